from __future__ import annotations

from holdgate.errors import GatewayError
from holdgate.services.fulfillment_gateway import (
    HOLDABLE_STATUSES,
    RELEASABLE_STATUSES,
    FulfillmentOrder,
    MutationResult,
)
from holdgate.services.identifiers import normalize_order_id
from holdgate.services.order_notes import prepend_note, strip_note


class MockFulfillmentGateway:
    """In-memory stand-in for the remote order API.

    Unknown orders get a single OPEN fulfillment order. Every mutation is
    appended to ``calls`` so callers can assert what was sent.
    """

    def __init__(self) -> None:
        self.fulfillment_orders: dict[str, list[dict]] = {}
        self.line_item_products: dict[str, list[str]] = {}
        self.order_notes: dict[str, str] = {}
        self.failing_fulfillment_orders: set[str] = set()
        self.unreachable = False
        self.calls: list[tuple[str, str]] = []

    def add_order(
        self,
        order_id: str,
        *,
        statuses: list[str],
        product_ids: list[str] | None = None,
        note: str = '',
    ) -> list[str]:
        key = normalize_order_id(order_id)
        self.fulfillment_orders[key] = [
            {'id': f'gid://shopify/FulfillmentOrder/{key}{index}', 'status': status}
            for index, status in enumerate(statuses, start=1)
        ]
        self.line_item_products[key] = list(product_ids or [])
        self.order_notes[key] = note
        return [fo['id'] for fo in self.fulfillment_orders[key]]

    def status_of(self, fulfillment_order_id: str) -> str | None:
        fo = self._find(fulfillment_order_id)
        return fo['status'] if fo else None

    def _check_reachable(self) -> None:
        if self.unreachable:
            raise GatewayError('Mock gateway is unreachable')

    def _orders_for(self, order_id: str) -> list[dict]:
        key = normalize_order_id(order_id)
        if key not in self.fulfillment_orders:
            self.add_order(key, statuses=['OPEN'])
        return self.fulfillment_orders[key]

    def _find(self, fulfillment_order_id: str) -> dict | None:
        for fulfillment_orders in self.fulfillment_orders.values():
            for fo in fulfillment_orders:
                if fo['id'] == fulfillment_order_id:
                    return fo
        return None

    def get_fulfillment_orders(self, *, order_id: str) -> list[FulfillmentOrder]:
        self._check_reachable()
        return [FulfillmentOrder(id=fo['id'], status=fo['status']) for fo in self._orders_for(order_id)]

    def apply_hold(
        self,
        *,
        fulfillment_order_id: str,
        reason_code: str,
        note: str,
        notify: bool = False,
    ) -> MutationResult:
        self._check_reachable()
        self.calls.append(('apply_hold', fulfillment_order_id))
        if fulfillment_order_id in self.failing_fulfillment_orders:
            return MutationResult(errors=['Fulfillment order cannot be held'])
        fo = self._find(fulfillment_order_id)
        if not fo:
            return MutationResult(errors=['Fulfillment order does not exist'])
        if fo['status'] not in HOLDABLE_STATUSES:
            return MutationResult(errors=[f'Fulfillment order is {fo["status"]}'])
        fo['status'] = 'ON_HOLD'
        return MutationResult()

    def release_hold(self, *, fulfillment_order_id: str) -> MutationResult:
        self._check_reachable()
        self.calls.append(('release_hold', fulfillment_order_id))
        if fulfillment_order_id in self.failing_fulfillment_orders:
            return MutationResult(errors=['Fulfillment order hold cannot be released'])
        fo = self._find(fulfillment_order_id)
        if not fo:
            return MutationResult(errors=['Fulfillment order does not exist'])
        if fo['status'] not in RELEASABLE_STATUSES:
            return MutationResult(errors=[f'Fulfillment order is {fo["status"]}'])
        fo['status'] = 'OPEN'
        return MutationResult()

    def get_line_item_product_ids(self, *, order_id: str) -> list[str]:
        self._check_reachable()
        return list(self.line_item_products.get(normalize_order_id(order_id), []))

    def post_order_note(self, *, order_id: str, text: str, marker: str) -> bool:
        self._check_reachable()
        key = normalize_order_id(order_id)
        new_note = prepend_note(self.order_notes.get(key), text, marker)
        if new_note is not None:
            self.calls.append(('post_order_note', key))
            self.order_notes[key] = new_note
        return True

    def remove_order_note_matching(self, *, order_id: str, marker: str) -> bool:
        self._check_reachable()
        key = normalize_order_id(order_id)
        new_note = strip_note(self.order_notes.get(key), marker)
        if new_note is not None:
            self.calls.append(('remove_order_note', key))
            self.order_notes[key] = new_note
        return True
