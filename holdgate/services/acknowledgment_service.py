from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from holdgate.models import OrderAcknowledgment, ProductNote


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _get(db: Session, *, order_id: str, note_id: str) -> OrderAcknowledgment | None:
    return db.execute(
        select(OrderAcknowledgment).where(
            OrderAcknowledgment.order_id == order_id,
            OrderAcknowledgment.note_id == note_id,
        )
    ).scalar_one_or_none()


def _refresh(
    ack: OrderAcknowledgment,
    *,
    actor: str,
    session_id: str | None,
    proof_photo_url: str | None,
) -> None:
    ack.acknowledged_by = actor
    ack.acknowledged_at = _now()
    ack.session_id = session_id
    if proof_photo_url:
        ack.proof_photo_url = proof_photo_url


def upsert_acknowledgment(
    db: Session,
    *,
    shop: str,
    order_id: str,
    note_id: str,
    product_id: str,
    actor: str,
    session_id: str | None,
    proof_photo_url: str | None = None,
) -> OrderAcknowledgment:
    """Record that ``note_id`` was reviewed for ``order_id``.

    Repeating the call for the same (order, note) pair refreshes the actor,
    timestamp and session instead of failing. Two writers racing on the
    insert both end up updating the same row.
    """
    existing = _get(db, order_id=order_id, note_id=note_id)
    if existing:
        _refresh(existing, actor=actor, session_id=session_id, proof_photo_url=proof_photo_url)
        db.flush()
        return existing

    ack = OrderAcknowledgment(
        shop_domain=shop,
        order_id=order_id,
        note_id=note_id,
        product_id=product_id,
        acknowledged_by=actor,
        acknowledged_at=_now(),
        session_id=session_id,
        proof_photo_url=proof_photo_url,
    )
    try:
        with db.begin_nested():
            db.add(ack)
    except IntegrityError:
        existing = _get(db, order_id=order_id, note_id=note_id)
        if not existing:
            raise
        _refresh(existing, actor=actor, session_id=session_id, proof_photo_url=proof_photo_url)
        db.flush()
        return existing
    return ack


def all_acknowledged(db: Session, *, shop: str, order_id: str, product_ids: list[str]) -> bool:
    """True when every note on ``product_ids`` has an acknowledgment for the order.

    Products without notes pass trivially, so an empty product list or a set
    of products with no notes at all is considered fully acknowledged.
    """
    if not product_ids:
        return True

    note_ids = set(
        db.execute(
            select(ProductNote.id).where(
                ProductNote.shop_domain == shop,
                ProductNote.product_id.in_(product_ids),
            )
        ).scalars().all()
    )
    if not note_ids:
        return True

    acknowledged_note_ids = set(
        db.execute(
            select(OrderAcknowledgment.note_id).where(
                OrderAcknowledgment.shop_domain == shop,
                OrderAcknowledgment.order_id == order_id,
                OrderAcknowledgment.note_id.in_(note_ids),
            )
        ).scalars().all()
    )
    return note_ids <= acknowledged_note_ids


def clear_for_order(db: Session, *, shop: str, order_id: str) -> int:
    result = db.execute(
        delete(OrderAcknowledgment).where(
            OrderAcknowledgment.shop_domain == shop,
            OrderAcknowledgment.order_id == order_id,
        )
    )
    return result.rowcount or 0


def list_for_order(db: Session, *, shop: str, order_id: str) -> list[OrderAcknowledgment]:
    return db.execute(
        select(OrderAcknowledgment)
        .where(
            OrderAcknowledgment.shop_domain == shop,
            OrderAcknowledgment.order_id == order_id,
        )
        .order_by(OrderAcknowledgment.acknowledged_at.asc())
    ).scalars().all()

