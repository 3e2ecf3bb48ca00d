from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


HOLDABLE_STATUSES = frozenset({'OPEN', 'SCHEDULED'})
RELEASABLE_STATUSES = frozenset({'ON_HOLD'})
FULFILLABLE_STATUSES = HOLDABLE_STATUSES | RELEASABLE_STATUSES


@dataclass(frozen=True)
class FulfillmentOrder:
    id: str
    status: str


@dataclass(frozen=True)
class MutationResult:
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class FulfillmentOrderGateway(Protocol):
    def get_fulfillment_orders(self, *, order_id: str) -> list[FulfillmentOrder]: ...

    def apply_hold(
        self,
        *,
        fulfillment_order_id: str,
        reason_code: str,
        note: str,
        notify: bool = False,
    ) -> MutationResult: ...

    def release_hold(self, *, fulfillment_order_id: str) -> MutationResult: ...

    def get_line_item_product_ids(self, *, order_id: str) -> list[str]: ...

    def post_order_note(self, *, order_id: str, text: str, marker: str) -> bool: ...

    def remove_order_note_matching(self, *, order_id: str, marker: str) -> bool: ...
