import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from storefront.metrics import CART_MERGE_LINES
from storefront.services.cart_store import CartLine, GuestCartStore, ServerCartStore

logger = logging.getLogger(__name__)

MERGE_STATE_KEY = "cart_merge_state"


@dataclass
class MergeState:
    """Per-session guard so one login merges the guest cart only once."""

    has_merged: bool = False
    last_user_id: Optional[int] = None

    def already_merged_for(self, user_id: int) -> bool:
        return self.has_merged and self.last_user_id == user_id

    def reset(self) -> None:
        self.has_merged = False
        self.last_user_id = None

    def to_dict(self) -> Dict:
        return {"has_merged": self.has_merged, "last_user_id": self.last_user_id}

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "MergeState":
        data = data or {}
        return cls(
            has_merged=bool(data.get("has_merged", False)),
            last_user_id=data.get("last_user_id"),
        )


@dataclass
class MergeResult:
    merged: List[CartLine] = field(default_factory=list)
    failed: List[CartLine] = field(default_factory=list)
    skipped: bool = False
    items: List[Dict] = field(default_factory=list)

    def to_dict(self):
        return {
            "skipped": self.skipped,
            "merged": [line.to_dict() for line in self.merged],
            "failed": [line.to_dict() for line in self.failed],
            "cart": self.items,
        }


class CartMergeCoordinator:
    """Folds a guest cart into a user's server cart after login.

    Additions are best effort: a line that cannot be added is logged and
    skipped. The guest snapshot is always discarded afterwards and the server
    view is force-refreshed before the result is returned.
    """

    def __init__(self, guest: GuestCartStore, server_factory: Callable[[int], ServerCartStore]):
        self.guest = guest
        self.server_factory = server_factory

    def merge(self, state: MergeState, user_id: int) -> MergeResult:
        server = self.server_factory(user_id)
        if state.already_merged_for(user_id):
            logger.info("Guest cart already merged for user %s in this session", user_id)
            return MergeResult(skipped=True, items=server.refresh())

        result = MergeResult()
        try:
            for line in self.guest.lines():
                try:
                    server.add_item(line.product_id, line.quantity)
                except Exception as e:
                    logger.warning(
                        "Skipping guest cart line product=%s qty=%s for user %s: %s",
                        line.product_id,
                        line.quantity,
                        user_id,
                        e,
                    )
                    CART_MERGE_LINES.labels("failed").inc()
                    result.failed.append(line)
                else:
                    CART_MERGE_LINES.labels("merged").inc()
                    result.merged.append(line)
        finally:
            self.guest.discard()

        state.has_merged = True
        state.last_user_id = user_id
        result.items = server.refresh(force=True)
        logger.info(
            "Merged guest cart into user %s: %d merged, %d failed",
            user_id,
            len(result.merged),
            len(result.failed),
        )
        return result
