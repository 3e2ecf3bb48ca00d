from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from holdgate.models import (
    AppSetting,
    AuditLog,
    OrderAcknowledgment,
    OrderReleaseAuthorization,
    ProductNote,
    ProductNotePhoto,
    ShopInstallation,
)


def purge_shop(db: Session, *, shop: str) -> dict[str, int]:
    """Delete every row stored for a shop. Returns deleted row counts per table."""
    note_ids = select(ProductNote.id).where(ProductNote.shop_domain == shop)
    statements = [
        ('audit_log', delete(AuditLog).where(AuditLog.shop_domain == shop)),
        ('product_note_photos', delete(ProductNotePhoto).where(ProductNotePhoto.note_id.in_(note_ids))),
        ('product_notes', delete(ProductNote).where(ProductNote.shop_domain == shop)),
        ('order_acknowledgments', delete(OrderAcknowledgment).where(OrderAcknowledgment.shop_domain == shop)),
        (
            'order_release_authorizations',
            delete(OrderReleaseAuthorization).where(OrderReleaseAuthorization.shop_domain == shop),
        ),
        ('app_settings', delete(AppSetting).where(AppSetting.shop_domain == shop)),
        ('shop_installations', delete(ShopInstallation).where(ShopInstallation.shop_domain == shop)),
    ]
    counts: dict[str, int] = {}
    for table, statement in statements:
        counts[table] = db.execute(statement.execution_options(synchronize_session=False)).rowcount or 0
    return counts
