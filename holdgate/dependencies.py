from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from holdgate.auth import ShopPrincipal, get_current_shop
from holdgate.db import get_db
from holdgate.errors import ShopNotInstalledError
from holdgate.services.fulfillment_gateway import FulfillmentOrderGateway
from holdgate.services.gateway_factory import get_fulfillment_gateway
from holdgate.services.hold_coordinator import GatewayLoader
from holdgate.services.settings_service import HoldPolicy, load_hold_policy


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_gateway_loader(
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
) -> GatewayLoader:
    return lambda: get_fulfillment_gateway(db, shop=principal.shop)


def get_gateway(loader: GatewayLoader = Depends(get_gateway_loader)) -> FulfillmentOrderGateway:
    try:
        return loader()
    except ShopNotInstalledError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Failed to get admin session',
        ) from exc


def get_hold_policy(
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
) -> HoldPolicy:
    return load_hold_policy(db, shop=principal.shop)
