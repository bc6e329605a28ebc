"""
Centralized engine configuration using the lazy Singleton pattern.

Reads the POS_ENGINE dict from Django settings on first access so business
logic never reaches into django.conf directly. Per-outlet values (currency,
service charge and tax rates) live on the Outlet row, not here.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "DEFAULT_CURRENCY": "XOF",
    "CASH_DENOMINATIONS": [10000, 5000, 2000, 1000, 500, 250, 200, 100, 50, 25, 10, 5],
    "SPLIT_EPSILON": "0.01",
    "CASH_LIKE_METHODS": ["cash"],
    "REFERENCE_REQUIRED_METHODS": ["mobile_money"],
    "FOLIO_GATEWAY": "payments.folio.InMemoryFolioGateway",
    "ORDER_NUMBER_PREFIX": "POS",
    "SERVER_LOAD_THRESHOLDS": {"light": 8, "normal": 15, "heavy": 20},
}


class EngineSettings:
    """
    A LAZY singleton giving typed access to the POS_ENGINE settings.
    Loading is deferred until the first attribute is read, which keeps
    management commands and settings overrides in tests working.
    """

    _instance: Optional["EngineSettings"] = None
    _initialized: bool = False

    def __new__(cls) -> "EngineSettings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def _setup(self):
        if not self._initialized:
            self.load_settings()
            self._initialized = True

    def __getattr__(self, name: str) -> Any:
        if not self._initialized:
            self._setup()
        try:
            return self.__dict__[name]
        except KeyError:
            raise AttributeError(f"'EngineSettings' object has no attribute '{name}'")

    def load_settings(self) -> None:
        from django.conf import settings

        raw = dict(DEFAULTS)
        raw.update(getattr(settings, "POS_ENGINE", {}) or {})

        try:
            self.default_currency: str = str(raw["DEFAULT_CURRENCY"]).upper()
            self.cash_denominations: List[int] = sorted(
                {int(d) for d in raw["CASH_DENOMINATIONS"]}, reverse=True
            )
            self.split_epsilon: Decimal = Decimal(str(raw["SPLIT_EPSILON"]))
            self.cash_like_methods: frozenset = frozenset(raw["CASH_LIKE_METHODS"])
            self.reference_required_methods: frozenset = frozenset(
                raw["REFERENCE_REQUIRED_METHODS"]
            )
            self.folio_gateway_path: str = raw["FOLIO_GATEWAY"]
            self.order_number_prefix: str = raw["ORDER_NUMBER_PREFIX"]
            self.server_load_thresholds: Dict[str, int] = {
                key: int(value) for key, value in raw["SERVER_LOAD_THRESHOLDS"].items()
            }
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise ImproperlyConfigured(f"Invalid POS_ENGINE setting: {e}")

        if not self.cash_denominations or self.cash_denominations[-1] <= 0:
            raise ImproperlyConfigured("POS_ENGINE CASH_DENOMINATIONS must be positive integers")
        if self.split_epsilon <= 0:
            raise ImproperlyConfigured("POS_ENGINE SPLIT_EPSILON must be positive")

        logger.debug(
            f"Engine settings loaded: currency={self.default_currency}, "
            f"{len(self.cash_denominations)} denominations"
        )

    def check_denominations(self) -> bool:
        """
        Re-verify that greedy change-making is optimal for the configured ladder.
        Returns the verdict; a non-canonical ladder makes payments fall back to
        exact dynamic-programming change.
        """
        from payments.denominations import is_greedy_canonical

        canonical = is_greedy_canonical(self.cash_denominations)
        if not canonical:
            logger.info(
                f"Cash denominations {self.cash_denominations} are not greedy-canonical; "
                "change breakdown uses exact change-making"
            )
        return canonical

    def reload(self) -> None:
        """Drop the cached values; the next access re-reads Django settings."""
        self.__dict__.clear()
        self._initialized = False
        logger.info("Engine settings reloaded")


engine_settings = EngineSettings()


def reload_engine_settings(sender, setting, **kwargs):
    """Receiver for django's setting_changed so overrides in tests take effect."""
    if setting == "POS_ENGINE":
        engine_settings.reload()
