from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from holdgate.auth import ShopPrincipal, get_current_shop
from holdgate.db import get_db
from holdgate.dependencies import get_client_ip, get_gateway, get_gateway_loader, get_hold_policy
from holdgate.errors import ReleaseRefusedError
from holdgate.schemas import (
    AcknowledgmentBody,
    CheckHoldBody,
    OrderNotesBody,
    OrderProductsBody,
    acknowledgment_dict,
    note_dict,
)
from holdgate.services import acknowledgment_service, hold_coordinator, note_service
from holdgate.services.audit_service import log_audit
from holdgate.services.fulfillment_gateway import FulfillmentOrderGateway
from holdgate.services.hold_coordinator import GatewayLoader
from holdgate.services.identifiers import normalize_order_id
from holdgate.services.settings_service import HoldPolicy

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api', tags=['orders'])


def _require_order_id(raw: str | None) -> str:
    order_id = normalize_order_id(raw or '')
    if not order_id:
        raise HTTPException(status_code=400, detail='Missing orderId')
    return order_id


def _require_product_ids(product_ids: list[str]) -> None:
    if not product_ids:
        raise HTTPException(status_code=400, detail='Missing productIds')


@router.post('/orders/{order_id}/notes')
def order_notes(
    order_id: str,
    body: OrderNotesBody,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    order_id = _require_order_id(order_id)
    notes = note_service.list_notes_for_products(db, shop=principal.shop, product_ids=body.product_ids)
    acknowledgments = acknowledgment_service.list_for_order(db, shop=principal.shop, order_id=order_id)
    logger.info('Found %s notes and %s acknowledgments for order %s', len(notes), len(acknowledgments), order_id)
    return {
        'notes': [note_dict(note) for note in notes],
        'acknowledgments': [acknowledgment_dict(ack) for ack in acknowledgments],
    }


@router.post('/acknowledgments')
def acknowledge_note(
    body: AcknowledgmentBody,
    request: Request,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
    policy: HoldPolicy = Depends(get_hold_policy),
    gateway_loader: GatewayLoader = Depends(get_gateway_loader),
):
    order_id = _require_order_id(body.order_id)
    if not body.note_id.strip():
        raise HTTPException(status_code=400, detail='Missing noteId')
    try:
        outcome = hold_coordinator.record_acknowledgment(
            db,
            shop=principal.shop,
            order_id=order_id,
            note_id=body.note_id,
            actor=principal.actor,
            session_id=body.session_id,
            policy=policy,
            gateway_loader=gateway_loader,
            all_product_ids=body.all_product_ids,
            proof_photo_url=body.proof_photo_url,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        shop=principal.shop,
        actor=principal.actor,
        action='ACKNOWLEDGE',
        entity_type='ORDER_ACKNOWLEDGMENT',
        entity_id=outcome.acknowledgment.id,
        ip=get_client_ip(request),
        metadata={
            'orderId': order_id,
            'noteId': outcome.acknowledgment.note_id,
            'sessionId': body.session_id,
            'holdReleased': outcome.hold_released,
        },
    )
    db.commit()
    return {
        'acknowledgment': acknowledgment_dict(outcome.acknowledgment),
        'allAcknowledged': outcome.all_acknowledged,
        'holdReleased': outcome.hold_released,
    }


@router.post('/check-hold')
def check_hold(
    body: CheckHoldBody,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
    policy: HoldPolicy = Depends(get_hold_policy),
    gateway: FulfillmentOrderGateway = Depends(get_gateway),
):
    order_id = _require_order_id(body.order_id)
    _require_product_ids(body.product_ids)
    result = hold_coordinator.reconcile_on_view(
        db,
        gateway,
        shop=principal.shop,
        order_id=order_id,
        product_ids=body.product_ids,
        session_id=body.session_id,
        policy=policy,
    )
    db.commit()
    return {
        'holdApplied': result.hold_applied,
        'acknowledgementsCleared': result.acknowledgements_cleared,
        'reason': result.reason,
        'results': [r.as_dict() for r in result.results],
    }


@router.post('/release-hold')
def release_hold(
    body: OrderProductsBody,
    request: Request,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
    gateway: FulfillmentOrderGateway = Depends(get_gateway),
):
    order_id = _require_order_id(body.order_id)
    _require_product_ids(body.product_ids)
    try:
        outcome = hold_coordinator.release_hold(
            db,
            gateway,
            shop=principal.shop,
            order_id=order_id,
            product_ids=body.product_ids,
        )
    except ReleaseRefusedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc

    log_audit(
        db,
        shop=principal.shop,
        actor=principal.actor,
        action='RELEASE_HOLD',
        entity_type='ORDER',
        entity_id=order_id,
        ip=get_client_ip(request),
        metadata={'success': outcome.success, 'results': [r.as_dict() for r in outcome.results]},
    )
    db.commit()
    response = {
        'success': outcome.success,
        'holdReleased': outcome.success,
        'results': [r.as_dict() for r in outcome.results],
    }
    if outcome.error:
        response['error'] = outcome.error
    return response


@router.post('/reset-acknowledgments')
def reset_acknowledgments(
    body: OrderProductsBody,
    request: Request,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
    policy: HoldPolicy = Depends(get_hold_policy),
    gateway_loader: GatewayLoader = Depends(get_gateway_loader),
):
    order_id = _require_order_id(body.order_id)
    _require_product_ids(body.product_ids)
    outcome = hold_coordinator.reset_acknowledgments(
        db,
        shop=principal.shop,
        order_id=order_id,
        product_ids=body.product_ids,
        policy=policy,
        gateway_loader=gateway_loader,
    )
    log_audit(
        db,
        shop=principal.shop,
        actor=principal.actor,
        action='RESET_ACKNOWLEDGMENTS',
        entity_type='ORDER',
        entity_id=order_id,
        ip=get_client_ip(request),
        metadata={'deletedCount': outcome.deleted_count, 'holdApplied': outcome.hold_applied},
    )
    db.commit()
    response = {
        'success': True,
        'deletedCount': outcome.deleted_count,
        'holdApplied': outcome.hold_applied,
    }
    if outcome.hold_error:
        response['holdError'] = outcome.hold_error
    return response
