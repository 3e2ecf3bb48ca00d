from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from holdgate.auth import ShopPrincipal, get_current_shop
from holdgate.db import get_db
from holdgate.dependencies import get_client_ip
from holdgate.schemas import SettingsBody, settings_dict
from holdgate.services.audit_service import log_audit
from holdgate.services.settings_service import get_app_setting, load_hold_policy, update_app_setting

router = APIRouter(prefix='/api/settings', tags=['settings'])


@router.get('')
def read_settings(
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    row = get_app_setting(db, shop=principal.shop)
    return {'settings': settings_dict(principal.shop, row, load_hold_policy(db, shop=principal.shop))}


@router.put('')
def write_settings(
    body: SettingsBody,
    request: Request,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    before = load_hold_policy(db, shop=principal.shop)
    row = update_app_setting(
        db,
        shop=principal.shop,
        require_acknowledgment=body.require_acknowledgment,
        require_photo_proof=body.require_photo_proof,
        block_fulfillment=body.block_fulfillment,
    )
    after = load_hold_policy(db, shop=principal.shop)
    log_audit(
        db,
        shop=principal.shop,
        actor=principal.actor,
        action='UPDATE',
        entity_type='APP_SETTING',
        entity_id=row.id,
        ip=get_client_ip(request),
        metadata={'old': asdict(before), 'new': asdict(after)},
    )
    db.commit()
    return {'settings': settings_dict(principal.shop, row, after)}
