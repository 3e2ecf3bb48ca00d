"""Decides when an order's fulfillment orders must be held or released.

Hold state lives in the remote order system; acknowledgment state lives in
our database. Nothing couples the two transactionally, so every operation
reads the current fulfillment-order statuses and only mutates the ones whose
status allows it (OPEN/SCHEDULED -> hold, ON_HOLD -> release). Fulfillment
orders are processed one at a time, in listing order, and a failure on one
never stops the others.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.orm import Session

from holdgate.config import settings
from holdgate.errors import GatewayError, ReleaseRefusedError, ShopNotInstalledError
from holdgate.models import OrderAcknowledgment
from holdgate.services import acknowledgment_service, note_service
from holdgate.services.fulfillment_gateway import (
    FULFILLABLE_STATUSES,
    HOLDABLE_STATUSES,
    RELEASABLE_STATUSES,
    FulfillmentOrder,
    FulfillmentOrderGateway,
)
from holdgate.services.order_notes import HOLD_WARNING_MARKER, HOLD_WARNING_TEXT
from holdgate.services.release_authorization_service import authorize_release
from holdgate.services.session_reconciliation import is_same_session
from holdgate.services.settings_service import HoldPolicy

logger = logging.getLogger(__name__)

GatewayLoader = Callable[[], FulfillmentOrderGateway]


class ItemOutcome(str, Enum):
    OK = 'OK'
    SKIPPED = 'SKIPPED'
    FAILED = 'FAILED'


@dataclass(frozen=True)
class FulfillmentOrderResult:
    fulfillment_order_id: str
    status: str
    outcome: ItemOutcome
    error: str | None = None

    def as_dict(self) -> dict:
        return {
            'fulfillmentOrderId': self.fulfillment_order_id,
            'status': self.status,
            'outcome': self.outcome.value,
            'success': self.outcome != ItemOutcome.FAILED,
            'error': self.error,
        }


@dataclass
class HoldOutcome:
    success: bool
    results: list[FulfillmentOrderResult] = field(default_factory=list)
    error: str | None = None

    @property
    def attempted(self) -> list[FulfillmentOrderResult]:
        return [r for r in self.results if r.outcome != ItemOutcome.SKIPPED]

    @property
    def changed(self) -> bool:
        return any(r.outcome == ItemOutcome.OK for r in self.results)


@dataclass(frozen=True)
class ViewReconciliation:
    hold_applied: bool
    acknowledgements_cleared: bool
    reason: str
    results: list[FulfillmentOrderResult] = field(default_factory=list)


@dataclass(frozen=True)
class ResetOutcome:
    deleted_count: int
    hold_applied: bool
    hold_error: str | None = None


@dataclass(frozen=True)
class AcknowledgmentOutcome:
    acknowledgment: OrderAcknowledgment
    all_acknowledged: bool
    hold_released: bool


def needs_hold(db: Session, *, shop: str, product_ids: list[str], policy: HoldPolicy) -> bool:
    if not policy.block_fulfillment:
        logger.info('blockFulfillment is disabled for %s', shop)
        return False
    notes_count = note_service.count_notes_for_products(db, shop=shop, product_ids=product_ids)
    logger.info('Found %s notes for products %s on %s', notes_count, product_ids, shop)
    return notes_count > 0


def _attach_advisory_note(gateway: FulfillmentOrderGateway, *, order_id: str) -> bool:
    try:
        return gateway.post_order_note(order_id=order_id, text=HOLD_WARNING_TEXT, marker=HOLD_WARNING_MARKER)
    except GatewayError:
        logger.exception('Failed to add hold warning to order %s', order_id)
        return False


def _remove_advisory_note(gateway: FulfillmentOrderGateway, *, order_id: str) -> bool:
    try:
        removed = gateway.remove_order_note_matching(order_id=order_id, marker=HOLD_WARNING_MARKER)
    except GatewayError:
        logger.warning('Failed to remove hold warning from order %s', order_id, exc_info=True)
        return False
    if not removed:
        logger.warning('Hold warning was not removed from order %s', order_id)
    return removed


def _hold_each(
    gateway: FulfillmentOrderGateway,
    fulfillment_orders: list[FulfillmentOrder],
    *,
    reason_code: str,
    reason_note: str,
) -> HoldOutcome:
    results: list[FulfillmentOrderResult] = []
    for fo in fulfillment_orders:
        if fo.status not in HOLDABLE_STATUSES:
            logger.info('Skipping hold for %s - status is %s', fo.id, fo.status)
            results.append(FulfillmentOrderResult(fo.id, fo.status, ItemOutcome.SKIPPED))
            continue
        try:
            mutation = gateway.apply_hold(
                fulfillment_order_id=fo.id,
                reason_code=reason_code,
                note=reason_note,
                notify=False,
            )
        except GatewayError as exc:
            logger.error('Exception applying hold to %s: %s', fo.id, exc)
            results.append(FulfillmentOrderResult(fo.id, fo.status, ItemOutcome.FAILED, str(exc)))
            continue
        if not mutation.ok:
            logger.error('Error applying hold to %s: %s', fo.id, mutation.errors)
            results.append(FulfillmentOrderResult(fo.id, fo.status, ItemOutcome.FAILED, ', '.join(mutation.errors)))
            continue
        logger.info('Hold applied to %s', fo.id)
        results.append(FulfillmentOrderResult(fo.id, fo.status, ItemOutcome.OK))
    return HoldOutcome(success=all(r.outcome != ItemOutcome.FAILED for r in results), results=results)


def _release_each(gateway: FulfillmentOrderGateway, fulfillment_orders: list[FulfillmentOrder]) -> HoldOutcome:
    results: list[FulfillmentOrderResult] = []
    for fo in fulfillment_orders:
        if fo.status not in RELEASABLE_STATUSES:
            logger.info('Skipping release for %s - status is %s', fo.id, fo.status)
            results.append(FulfillmentOrderResult(fo.id, fo.status, ItemOutcome.SKIPPED))
            continue
        try:
            mutation = gateway.release_hold(fulfillment_order_id=fo.id)
        except GatewayError as exc:
            logger.error('Exception releasing hold from %s: %s', fo.id, exc)
            results.append(FulfillmentOrderResult(fo.id, fo.status, ItemOutcome.FAILED, str(exc)))
            continue
        if not mutation.ok:
            logger.error('Error releasing hold from %s: %s', fo.id, mutation.errors)
            results.append(FulfillmentOrderResult(fo.id, fo.status, ItemOutcome.FAILED, ', '.join(mutation.errors)))
            continue
        logger.info('Hold released from %s', fo.id)
        results.append(FulfillmentOrderResult(fo.id, fo.status, ItemOutcome.OK))
    return HoldOutcome(success=all(r.outcome != ItemOutcome.FAILED for r in results), results=results)


def _load_fulfillment_orders(gateway: FulfillmentOrderGateway, *, order_id: str) -> list[FulfillmentOrder]:
    fulfillment_orders = gateway.get_fulfillment_orders(order_id=order_id)
    logger.info(
        'Order %s has fulfillment orders %s',
        order_id,
        [(fo.id, fo.status) for fo in fulfillment_orders],
    )
    return fulfillment_orders


def _apply_to(
    gateway: FulfillmentOrderGateway,
    fulfillment_orders: list[FulfillmentOrder],
    *,
    order_id: str,
    reason_code: str | None,
    reason_note: str | None,
) -> HoldOutcome:
    outcome = _hold_each(
        gateway,
        fulfillment_orders,
        reason_code=reason_code or settings.hold_reason_code,
        reason_note=reason_note or settings.hold_reason_note,
    )
    if outcome.changed:
        _attach_advisory_note(gateway, order_id=order_id)
    return outcome


def apply_hold(
    gateway: FulfillmentOrderGateway,
    *,
    order_id: str,
    reason_code: str | None = None,
    reason_note: str | None = None,
) -> HoldOutcome:
    """Hold every OPEN/SCHEDULED fulfillment order of the order.

    Already-held, closed and cancelled fulfillment orders are reported as
    skipped. The merchant-facing warning is added to the order note once a
    hold lands.
    """
    try:
        fulfillment_orders = _load_fulfillment_orders(gateway, order_id=order_id)
    except GatewayError as exc:
        logger.error('Could not load fulfillment orders for order %s: %s', order_id, exc)
        return HoldOutcome(success=False, error=str(exc))
    return _apply_to(
        gateway,
        fulfillment_orders,
        order_id=order_id,
        reason_code=reason_code,
        reason_note=reason_note,
    )


def release_hold(
    db: Session,
    gateway: FulfillmentOrderGateway,
    *,
    shop: str,
    order_id: str,
    product_ids: list[str],
    ttl_seconds: int | None = None,
) -> HoldOutcome:
    """Release held fulfillment orders once every note is acknowledged.

    Raises ReleaseRefusedError, without contacting the remote API, while any
    note is still pending.
    """
    if not acknowledgment_service.all_acknowledged(db, shop=shop, order_id=order_id, product_ids=product_ids):
        logger.info('Not all notes acknowledged for order %s - refusing to release hold', order_id)
        raise ReleaseRefusedError('All notes must be acknowledged before releasing hold')

    authorization = authorize_release(
        db,
        shop=shop,
        order_id=order_id,
        ttl_seconds=ttl_seconds or settings.release_authorization_ttl_seconds,
    )
    # The authorization must be visible to other workers before the release lands.
    db.commit()
    logger.info('Release authorized for order %s until %s', order_id, authorization.expires_at)

    try:
        fulfillment_orders = _load_fulfillment_orders(gateway, order_id=order_id)
    except GatewayError as exc:
        logger.error('Could not load fulfillment orders for order %s: %s', order_id, exc)
        return HoldOutcome(success=False, error=str(exc))

    outcome = _release_each(gateway, fulfillment_orders)
    if outcome.changed:
        _remove_advisory_note(gateway, order_id=order_id)
    return outcome


def reconcile_on_view(
    db: Session,
    gateway: FulfillmentOrderGateway,
    *,
    shop: str,
    order_id: str,
    product_ids: list[str],
    session_id: str | None,
    policy: HoldPolicy,
) -> ViewReconciliation:
    """Make sure a hold is in place when someone opens the order.

    A viewer carrying the session id that wrote the existing acknowledgments
    is a re-render of the same session and changes nothing. Any other viewer
    starts over: acknowledgments are purged and the hold is re-applied.
    """
    if not policy.block_fulfillment:
        return ViewReconciliation(False, False, 'blockFulfillment disabled')
    if note_service.count_notes_for_products(db, shop=shop, product_ids=product_ids) == 0:
        return ViewReconciliation(False, False, 'no notes')

    try:
        fulfillment_orders = _load_fulfillment_orders(gateway, order_id=order_id)
    except GatewayError as exc:
        logger.error('Could not load fulfillment orders for order %s: %s', order_id, exc)
        return ViewReconciliation(False, False, 'failed to load fulfillment orders')

    if not any(fo.status in FULFILLABLE_STATUSES for fo in fulfillment_orders):
        return ViewReconciliation(False, False, 'order not fulfillable')

    acknowledgments = acknowledgment_service.list_for_order(db, shop=shop, order_id=order_id)
    cleared = False
    if acknowledgments:
        if is_same_session((ack.session_id for ack in acknowledgments), session_id):
            logger.info('Session %s is still viewing order %s', session_id, order_id)
            return ViewReconciliation(False, False, 'same session')
        deleted = acknowledgment_service.clear_for_order(db, shop=shop, order_id=order_id)
        logger.info('New session on order %s - cleared %s acknowledgments', order_id, deleted)
        cleared = True

    outcome = _apply_to(gateway, fulfillment_orders, order_id=order_id, reason_code=None, reason_note=None)
    if not outcome.attempted:
        _attach_advisory_note(gateway, order_id=order_id)
        return ViewReconciliation(False, cleared, 'already on hold or not eligible', outcome.results)
    if not outcome.success:
        logger.warning('Failed to apply hold to order %s: %s', order_id, outcome.results)
        return ViewReconciliation(False, cleared, 'failed to apply hold', outcome.results)
    return ViewReconciliation(True, cleared, 'hold re-applied' if cleared else 'hold applied', outcome.results)


def reset_acknowledgments(
    db: Session,
    *,
    shop: str,
    order_id: str,
    product_ids: list[str],
    policy: HoldPolicy,
    gateway_loader: GatewayLoader,
) -> ResetOutcome:
    deleted = acknowledgment_service.clear_for_order(db, shop=shop, order_id=order_id)
    logger.info('Deleted %s acknowledgments for order %s', deleted, order_id)

    if not product_ids or not needs_hold(db, shop=shop, product_ids=product_ids, policy=policy):
        return ResetOutcome(deleted_count=deleted, hold_applied=False)

    try:
        gateway = gateway_loader()
    except ShopNotInstalledError as exc:
        logger.error('Cannot apply hold to order %s: %s', order_id, exc)
        return ResetOutcome(deleted_count=deleted, hold_applied=False, hold_error='Failed to apply hold')

    outcome = apply_hold(gateway, order_id=order_id)
    logger.info('Hold apply result for order %s: %s', order_id, outcome.results)
    if not outcome.success:
        return ResetOutcome(deleted_count=deleted, hold_applied=False, hold_error='Failed to apply hold')
    return ResetOutcome(deleted_count=deleted, hold_applied=True)


def _order_product_ids(gateway_loader: GatewayLoader, *, order_id: str) -> list[str] | None:
    try:
        return gateway_loader().get_line_item_product_ids(order_id=order_id)
    except (GatewayError, ShopNotInstalledError) as exc:
        logger.error('Could not load line items for order %s: %s', order_id, exc)
        return None


def record_acknowledgment(
    db: Session,
    *,
    shop: str,
    order_id: str,
    note_id: str,
    actor: str,
    session_id: str | None,
    policy: HoldPolicy,
    gateway_loader: GatewayLoader,
    all_product_ids: list[str] | None = None,
    proof_photo_url: str | None = None,
) -> AcknowledgmentOutcome:
    """Acknowledge one note and release the hold when it was the last one pending.

    The products checked are ``all_product_ids`` plus the order's line items
    as reported remotely, so a caller cannot release by leaving a product out.
    If the line items cannot be loaded the acknowledgment still stands and no
    release is tried.
    """
    note = note_service.get_note(db, shop=shop, note_id=note_id)
    if not note:
        raise LookupError('Note not found')
    if policy.require_photo_proof and not proof_photo_url:
        raise ValueError('Photo proof is required to acknowledge this note')

    acknowledgment = acknowledgment_service.upsert_acknowledgment(
        db,
        shop=shop,
        order_id=order_id,
        note_id=note.id,
        product_id=note.product_id,
        actor=actor,
        session_id=session_id,
        proof_photo_url=proof_photo_url,
    )

    product_ids = list(all_product_ids or [])
    may_release = policy.block_fulfillment
    if policy.block_fulfillment:
        line_item_ids = _order_product_ids(gateway_loader, order_id=order_id)
        if line_item_ids is None:
            may_release = False
        else:
            product_ids.extend(p for p in line_item_ids if p not in product_ids)
    may_release = may_release and bool(product_ids)
    if not product_ids:
        product_ids = [note.product_id]

    all_done = acknowledgment_service.all_acknowledged(db, shop=shop, order_id=order_id, product_ids=product_ids)
    if not (all_done and may_release):
        return AcknowledgmentOutcome(acknowledgment, all_done, False)

    try:
        gateway = gateway_loader()
    except ShopNotInstalledError as exc:
        logger.error('Cannot release hold on order %s: %s', order_id, exc)
        return AcknowledgmentOutcome(acknowledgment, all_done, False)
    outcome = release_hold(db, gateway, shop=shop, order_id=order_id, product_ids=product_ids)
    return AcknowledgmentOutcome(acknowledgment, all_done, outcome.success)


def hold_new_order(
    db: Session,
    *,
    shop: str,
    order_id: str,
    product_ids: list[str],
    policy: HoldPolicy,
    gateway_loader: GatewayLoader,
) -> HoldOutcome | None:
    """Webhook path for new orders. Never raises, so the delivery is always acknowledged."""
    try:
        if not needs_hold(db, shop=shop, product_ids=product_ids, policy=policy):
            return None
        outcome = apply_hold(gateway_loader(), order_id=order_id)
    except Exception:
        logger.exception('Failed to hold new order %s for %s', order_id, shop)
        return None
    if not outcome.success:
        logger.error('Hold for new order %s incomplete: %s', order_id, outcome.results or outcome.error)
    return outcome
