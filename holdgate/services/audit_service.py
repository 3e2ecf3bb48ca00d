from __future__ import annotations

from sqlalchemy.orm import Session

from holdgate.models import AuditLog


def log_audit(
    db: Session,
    *,
    shop: str,
    actor: str,
    action: str,
    entity_type: str,
    entity_id: str | None,
    ip: str | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            shop_domain=shop,
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            ip=ip,
            meta=metadata or {},
        )
    )
