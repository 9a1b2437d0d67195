"""Session-scoped cart state: the guest snapshot and the merge guard."""
from flask import current_app, session

from storefront.services.cart_merge import MERGE_STATE_KEY, CartMergeCoordinator, MergeState
from storefront.services.cart_store import GuestCartStore, ServerCartStore
from storefront.services.catalog import ProductCatalog


def guest_cart() -> GuestCartStore:
    return GuestCartStore(session, ProductCatalog())


def server_cart(user_id: int) -> ServerCartStore:
    return ServerCartStore(
        user_id,
        ProductCatalog(),
        debounce_seconds=current_app.config.get("CART_REFRESH_DEBOUNCE_SECONDS", 2.0),
    )


def load_merge_state() -> MergeState:
    return MergeState.from_dict(session.get(MERGE_STATE_KEY))


def save_merge_state(state: MergeState) -> None:
    session[MERGE_STATE_KEY] = state.to_dict()


def merge_guest_cart(user_id: int):
    state = load_merge_state()
    result = CartMergeCoordinator(guest_cart(), server_cart).merge(state, user_id)
    save_merge_state(state)
    return result


def end_cart_session() -> None:
    """Forget the merge guard and drop the guest snapshot."""
    state = load_merge_state()
    state.reset()
    save_merge_state(state)
    guest_cart().discard()
