"""
Root conftest.py for all backend tests.

This file makes fixtures available to all test files across all apps.
"""
import pytest

from outlets.managers import set_current_organization


# ============================================================================
# AUTO-USE FIXTURES (Run automatically for every test)
# ============================================================================

@pytest.fixture(autouse=True)
def reset_organization_context():
    """
    Reset organization context after each test.

    CRITICAL: This prevents organization context from leaking between tests.
    If context leaks, tests may pass when they should fail.
    """
    yield  # Run the test

    # After test: ALWAYS reset to None
    set_current_organization(None)


@pytest.fixture(autouse=True)
def reset_folio_ledger():
    """
    Empty the in-memory folio ledger after each test so room charges
    posted by one test are never replayed in another.
    """
    yield

    from payments.folio import InMemoryFolioGateway, get_folio_gateway

    gateway = get_folio_gateway()
    if isinstance(gateway, InMemoryFolioGateway):
        gateway.reset()


# ============================================================================
# IMPORT ALL FIXTURES FROM core_backend/tests/fixtures.py
# ============================================================================
from core_backend.tests.fixtures import *
