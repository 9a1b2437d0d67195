"""Actions each storefront role may perform.

Customers act on their own cart and orders; ``view_any_order`` and the
``manage_*`` actions are reserved for staff.
"""
from typing import Dict, FrozenSet, Optional

CUSTOMER_ACTIONS = frozenset({"manage_cart", "checkout", "view_own_orders"})

ROLE_SCOPES: Dict[str, FrozenSet[str]] = {
    "customer": CUSTOMER_ACTIONS,
    "admin": frozenset({"*"}),
}


def role_has_scope(role: Optional[str], action: str) -> bool:
    if not role:
        return False
    scopes = ROLE_SCOPES.get(role, frozenset())
    return "*" in scopes or action in scopes
