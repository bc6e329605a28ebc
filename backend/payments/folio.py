"""
Billing collaborator for room charges.

A room charge posts the order total to a hotel guest's folio instead of
collecting money at the outlet. The concrete gateway is chosen by the
POS_ENGINE["FOLIO_GATEWAY"] dotted path, so a property-management-system
client can be plugged in without touching the payment engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Optional
import logging
import uuid

from django.utils.module_loading import import_string

from outlets.config import engine_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FolioChargeResult:
    success: bool
    charge_id: Optional[str] = None
    message: str = ""


class FolioGateway(ABC):
    """
    The Abstract Base Class for a folio billing client.
    """

    @abstractmethod
    def post_charge(
        self, folio_id: str, amount: Decimal, line_items: List[dict], idempotency_key: str
    ) -> FolioChargeResult:
        """
        Post a charge to a guest folio.

        Implementations MUST treat idempotency_key as the identity of the
        charge: posting the same key twice returns the first result and does
        not bill the guest again. Transport failures should raise
        ConnectionError or TimeoutError so the caller can retry.
        """
        pass


class InMemoryFolioGateway(FolioGateway):
    """
    In-process folio ledger used in development and tests.
    Folios are open unless they were closed with close_folio().
    """

    def __init__(self):
        self.charges: Dict[str, dict] = {}
        self.closed_folios = set()

    def post_charge(self, folio_id, amount, line_items, idempotency_key):
        existing = self.charges.get(idempotency_key)
        if existing is not None:
            logger.debug(f"Folio charge {idempotency_key} replayed, returning {existing['charge_id']}")
            return FolioChargeResult(success=True, charge_id=existing["charge_id"])

        if not folio_id or folio_id in self.closed_folios:
            return FolioChargeResult(success=False, message=f"Folio {folio_id} is closed or unknown")

        charge_id = f"FOLIO-{uuid.uuid4().hex[:12].upper()}"
        self.charges[idempotency_key] = {
            "charge_id": charge_id,
            "folio_id": folio_id,
            "amount": Decimal(amount),
            "line_items": list(line_items),
        }
        logger.info(f"Posted {amount} to folio {folio_id} ({charge_id})")
        return FolioChargeResult(success=True, charge_id=charge_id)

    def close_folio(self, folio_id: str) -> None:
        self.closed_folios.add(folio_id)

    def charges_for(self, folio_id: str) -> List[dict]:
        return [c for c in self.charges.values() if c["folio_id"] == folio_id]

    def reset(self) -> None:
        self.charges.clear()
        self.closed_folios.clear()


@lru_cache(maxsize=4)
def _gateway_for(path: str) -> FolioGateway:
    return import_string(path)()


def get_folio_gateway() -> FolioGateway:
    """The configured gateway; one shared instance per dotted path."""
    return _gateway_for(engine_settings.folio_gateway_path)
