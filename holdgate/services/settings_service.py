from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from holdgate.models import AppSetting


@dataclass(frozen=True)
class HoldPolicy:
    """Per-shop switches that govern the hold coordinator."""

    block_fulfillment: bool = False
    require_acknowledgment: bool = True
    require_photo_proof: bool = False


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_app_setting(db: Session, *, shop: str) -> AppSetting | None:
    return db.execute(select(AppSetting).where(AppSetting.shop_domain == shop)).scalar_one_or_none()


def load_hold_policy(db: Session, *, shop: str) -> HoldPolicy:
    row = get_app_setting(db, shop=shop)
    if not row:
        return HoldPolicy()
    return HoldPolicy(
        block_fulfillment=row.block_fulfillment,
        require_acknowledgment=row.require_acknowledgment,
        require_photo_proof=row.require_photo_proof,
    )


def update_app_setting(
    db: Session,
    *,
    shop: str,
    require_acknowledgment: bool | None = None,
    require_photo_proof: bool | None = None,
    block_fulfillment: bool | None = None,
) -> AppSetting:
    row = get_app_setting(db, shop=shop)
    if not row:
        defaults = HoldPolicy()
        row = AppSetting(
            shop_domain=shop,
            require_acknowledgment=defaults.require_acknowledgment,
            require_photo_proof=defaults.require_photo_proof,
            block_fulfillment=defaults.block_fulfillment,
        )
        db.add(row)
    if require_acknowledgment is not None:
        row.require_acknowledgment = require_acknowledgment
    if require_photo_proof is not None:
        row.require_photo_proof = require_photo_proof
    if block_fulfillment is not None:
        row.block_fulfillment = block_fulfillment
    row.updated_at = _now()
    db.flush()
    return row
