from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from holdgate.models import OrderReleaseAuthorization


DEFAULT_TTL_SECONDS = 60


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def authorize_release(
    db: Session,
    *,
    shop: str,
    order_id: str,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
) -> OrderReleaseAuthorization:
    """Open (or re-open) the release window for an order.

    Every call resets the expiry and clears ``consumed``, so a retried release
    refreshes the window instead of failing on the unique key.
    """
    expires_at = _now() + timedelta(seconds=ttl_seconds)
    authorization = db.execute(
        select(OrderReleaseAuthorization).where(
            OrderReleaseAuthorization.order_id == order_id,
            OrderReleaseAuthorization.shop_domain == shop,
        )
    ).scalar_one_or_none()
    if not authorization:
        authorization = OrderReleaseAuthorization(order_id=order_id, shop_domain=shop)
        db.add(authorization)
    authorization.expires_at = expires_at
    authorization.consumed = False
    db.flush()
    return authorization


def is_release_authorized(db: Session, *, shop: str, order_id: str) -> bool:
    # Expiry is a read-time filter; nothing sweeps old rows.
    return (
        db.execute(
            select(OrderReleaseAuthorization.id).where(
                OrderReleaseAuthorization.order_id == order_id,
                OrderReleaseAuthorization.shop_domain == shop,
                OrderReleaseAuthorization.consumed.is_(False),
                OrderReleaseAuthorization.expires_at > _now(),
            )
        ).scalar_one_or_none()
        is not None
    )


def consume_release_authorization(db: Session, *, shop: str, order_id: str) -> bool:
    """Mark a live authorization consumed. Returns False if none was live."""
    result = db.execute(
        update(OrderReleaseAuthorization)
        .where(
            OrderReleaseAuthorization.order_id == order_id,
            OrderReleaseAuthorization.shop_domain == shop,
            OrderReleaseAuthorization.consumed.is_(False),
            OrderReleaseAuthorization.expires_at > _now(),
        )
        .values(consumed=True)
        .execution_options(synchronize_session=False)
    )
    return (result.rowcount or 0) > 0
