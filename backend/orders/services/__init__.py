"""
Orders services package - the order lifecycle split into focused modules:
- OrderService: Core order lifecycle (create, advance, cancel, transfer)
- OrderCalculationService: Derived totals
- OrderItemService: Item management (add, update, remove, cancel)
- OrderDiscountService: Order-level discount
"""

# Core order operations
from .order_service import OrderService

# Calculation operations
from .calculation_service import OrderCalculationService

# Item management
from .item_service import OrderItemService, ProductRef

# Discount operations
from .discount_service import OrderDiscountService

__all__ = [
    'OrderService',
    'OrderCalculationService',
    'OrderItemService',
    'ProductRef',
    'OrderDiscountService',
]
