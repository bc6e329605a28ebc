"""
Shared test fixtures for all backend tests.

This module provides reusable pytest fixtures for common test objects
like organizations, outlets, tables, servers and products.
"""
import pytest
from decimal import Decimal

from django.contrib.auth import get_user_model

from outlets.models import Organization, Outlet
from outlets.managers import set_current_organization
from tables.models import Server, Table


# ============================================================================
# ORGANIZATION FIXTURES
# ============================================================================

@pytest.fixture
def organization_a(db):
    """Create test organization A (beach hotel)"""
    return Organization.objects.create(name='Hotel Ivoire', slug='hotel-ivoire', is_active=True)


@pytest.fixture
def organization_b(db):
    """Create test organization B (city bistro)"""
    return Organization.objects.create(name='Bistro Plateau', slug='bistro-plateau', is_active=True)


# ============================================================================
# OUTLET FIXTURES
# ============================================================================

@pytest.fixture
def outlet_a(organization_a):
    """Restaurant outlet billing in XOF with 10% service charge and 18% VAT"""
    return Outlet.objects.create(
        organization=organization_a,
        name='La Terrasse',
        code='TERRASSE',
        outlet_type=Outlet.OutletType.RESTAURANT,
        currency='XOF',
        service_charge_rate=Decimal('0.10'),
        tax_rate=Decimal('0.18'),
    )


@pytest.fixture
def bar_outlet_a(organization_a):
    """Second outlet of organization A, no service charge"""
    return Outlet.objects.create(
        organization=organization_a,
        name='Pool Bar',
        code='POOLBAR',
        outlet_type=Outlet.OutletType.POOL_BAR,
        currency='XOF',
        service_charge_rate=Decimal('0'),
        tax_rate=Decimal('0.18'),
    )


@pytest.fixture
def outlet_b(organization_b):
    """Outlet of organization B billing in EUR"""
    return Outlet.objects.create(
        organization=organization_b,
        name='Bistro',
        code='BISTRO',
        currency='EUR',
        service_charge_rate=Decimal('0'),
        tax_rate=Decimal('0.20'),
    )


# ============================================================================
# USER FIXTURES
# ============================================================================

@pytest.fixture
def cashier(db):
    """Create a cashier user"""
    User = get_user_model()
    return User.objects.create_user(username='cashier', password='test-pass-123')


# ============================================================================
# FLOOR FIXTURES
# ============================================================================

@pytest.fixture
def server_awa(outlet_a):
    return Server.objects.create(
        organization=outlet_a.organization, outlet=outlet_a, name='Awa', zone='terrace', max_tables=3
    )


@pytest.fixture
def server_kofi(outlet_a):
    return Server.objects.create(
        organization=outlet_a.organization, outlet=outlet_a, name='Kofi', zone='indoor', max_tables=2
    )


@pytest.fixture
def make_table(outlet_a):
    """Factory for tables of outlet A"""
    def _make(number, capacity, zone='terrace', **kwargs):
        return Table.objects.create(
            organization=outlet_a.organization,
            outlet=outlet_a,
            number=str(number),
            capacity=capacity,
            zone=zone,
            **kwargs,
        )
    return _make


@pytest.fixture
def dining_room(make_table):
    """
    Four terrace tables and two indoor tables:
    T1(2) T2(4) T3(4) T4(6) terrace, T5(2) T6(8) indoor
    """
    return {
        'T1': make_table('1', 2),
        'T2': make_table('2', 4),
        'T3': make_table('3', 4),
        'T4': make_table('4', 6),
        'T5': make_table('5', 2, zone='indoor'),
        'T6': make_table('6', 8, zone='indoor'),
    }


# ============================================================================
# PRODUCT FIXTURES
# ============================================================================

@pytest.fixture
def attieke():
    """Catalog entry as the menu service hands it to the register"""
    return {'id': 'prod-attieke', 'name': 'Attieke Poisson', 'code': 'ATT', 'price': Decimal('2500')}


@pytest.fixture
def bissap():
    return {'id': 'prod-bissap', 'name': 'Bissap', 'code': 'BIS', 'price': Decimal('500')}


@pytest.fixture
def alloco():
    return {'id': 'prod-alloco', 'name': 'Alloco', 'code': 'ALL', 'price': Decimal('1000')}


# ============================================================================
# ORDER FIXTURES
# ============================================================================

@pytest.fixture
def org_context(organization_a):
    """Run the test inside organization A's context"""
    set_current_organization(organization_a)
    return organization_a


@pytest.fixture
def takeaway_order(org_context, outlet_a, cashier):
    from orders.services import OrderService
    return OrderService.create_order(outlet_a, customer_count=1, cashier=cashier)


@pytest.fixture
def priced_order(takeaway_order, attieke):
    """2 x 2500 with a 10% discount: 5000 / 500 / 450 / 891 / 5841"""
    from orders.calculators import DiscountSpec
    from orders.services import OrderDiscountService, OrderItemService

    OrderItemService.add_item(takeaway_order, attieke, quantity=2)
    OrderDiscountService.apply_discount(takeaway_order, DiscountSpec.percentage(10))
    takeaway_order.refresh_from_db()
    return takeaway_order
