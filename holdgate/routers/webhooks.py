from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from holdgate.config import settings
from holdgate.db import get_db
from holdgate.security.webhooks import normalize_topic, verify_webhook_hmac
from holdgate.services.gateway_factory import get_fulfillment_gateway
from holdgate.services.hold_coordinator import hold_new_order
from holdgate.services.identifiers import normalize_order_id, product_gid
from holdgate.services.settings_service import load_hold_policy
from holdgate.services.shop_data_service import purge_shop

logger = logging.getLogger(__name__)

router = APIRouter(tags=['webhooks'])

HANDLED_TOPICS = frozenset(
    {'ORDERS_CREATE', 'APP_UNINSTALLED', 'SHOP_REDACT', 'CUSTOMERS_DATA_REQUEST', 'CUSTOMERS_REDACT'}
)


def order_product_ids(payload: dict) -> list[str]:
    product_ids: list[str] = []
    for line_item in payload.get('line_items') or []:
        raw = line_item.get('product_id')
        if raw is None:
            continue
        product_id = product_gid(raw)
        if product_id not in product_ids:
            product_ids.append(product_id)
    return product_ids


def _handle_orders_create(db: Session, shop: str, payload: dict) -> None:
    raw_order_id = payload.get('admin_graphql_api_id') or payload.get('id')
    if not raw_order_id:
        logger.error('ORDERS_CREATE for %s has no order id', shop)
        return
    order_id = normalize_order_id(raw_order_id)
    product_ids = order_product_ids(payload)
    outcome = hold_new_order(
        db,
        shop=shop,
        order_id=order_id,
        product_ids=product_ids,
        policy=load_hold_policy(db, shop=shop),
        gateway_loader=lambda: get_fulfillment_gateway(db, shop=shop),
    )
    if outcome is not None:
        logger.info('New order %s hold result: success=%s', order_id, outcome.success)


def _handle_shop_removed(db: Session, shop: str) -> None:
    counts = purge_shop(db, shop=shop)
    db.commit()
    logger.info('Removed data for %s: %s', shop, counts)


def _dispatch(db: Session, shop: str, topic: str, body: bytes) -> None:
    if topic == 'ORDERS_CREATE':
        try:
            payload = json.loads(body or b'{}')
        except ValueError:
            logger.error('ORDERS_CREATE for %s has an unreadable body', shop)
            return
        if isinstance(payload, dict):
            _handle_orders_create(db, shop, payload)
    elif topic in {'APP_UNINSTALLED', 'SHOP_REDACT'}:
        _handle_shop_removed(db, shop)
    elif topic == 'CUSTOMERS_DATA_REQUEST':
        logger.info('Customer data requested for shop %s; no customer data is stored', shop)
    elif topic == 'CUSTOMERS_REDACT':
        logger.info('Customer redaction requested for shop %s; no customer data is stored', shop)


@router.post('/webhooks')
async def receive_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    if not verify_webhook_hmac(body, request.headers.get('x-shopify-hmac-sha256'), settings.shopify_api_secret):
        raise HTTPException(status_code=401, detail='Invalid webhook signature')

    shop = request.headers.get('x-shopify-shop-domain')
    if not shop:
        raise HTTPException(status_code=400, detail='No shop provided')
    topic = normalize_topic(request.headers.get('x-shopify-topic'))
    if topic not in HANDLED_TOPICS:
        raise HTTPException(status_code=404, detail='Unhandled webhook topic')

    # Database and remote calls block; keep them off the event loop.
    await run_in_threadpool(_dispatch, db, shop, topic, body)
    return Response()
