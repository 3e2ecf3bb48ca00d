from __future__ import annotations

from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.orm import Session

from holdgate.config import settings
from holdgate.errors import ShopNotInstalledError
from holdgate.models import ShopInstallation
from holdgate.services.fulfillment_gateway import FulfillmentOrderGateway
from holdgate.services.mock_fulfillment_gateway import MockFulfillmentGateway
from holdgate.services.shopify_fulfillment_gateway import ShopifyFulfillmentGateway


@lru_cache(maxsize=1)
def _mock_gateway() -> MockFulfillmentGateway:
    return MockFulfillmentGateway()


def get_fulfillment_gateway(db: Session, *, shop: str) -> FulfillmentOrderGateway:
    provider = settings.fulfillment_gateway.strip().lower()
    if provider != 'shopify':
        return _mock_gateway()

    access_token = db.execute(
        select(ShopInstallation.access_token).where(ShopInstallation.shop_domain == shop)
    ).scalar_one_or_none()
    if not access_token:
        raise ShopNotInstalledError(f'No offline session stored for {shop}')
    return ShopifyFulfillmentGateway(shop=shop, access_token=access_token)
