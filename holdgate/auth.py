from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from holdgate.config import settings
from holdgate.db import get_db
from holdgate.models import ShopInstallation
from holdgate.security.session_tokens import SessionTokenError, bearer_token, decode_session_token

logger = logging.getLogger(__name__)

EXTENSION_ACTOR = 'extension-user'


@dataclass
class ShopPrincipal:
    shop: str
    user_id: str | None
    verified: bool

    @property
    def actor(self) -> str:
        return self.user_id or EXTENSION_ACTOR


def is_shop_installed(db: Session, shop: str) -> bool:
    if not shop:
        return False
    return db.execute(
        select(ShopInstallation.id).where(ShopInstallation.shop_domain == shop)
    ).scalar_one_or_none() is not None


def get_current_shop(request: Request, db: Session = Depends(get_db)) -> ShopPrincipal:
    token = bearer_token(request.headers.get('authorization'))
    error = 'No authentication provided'
    if token and settings.shopify_api_secret and settings.shopify_api_key:
        try:
            claims = decode_session_token(
                token,
                secret=settings.shopify_api_secret,
                audience=settings.shopify_api_key,
            )
        except SessionTokenError as exc:
            error = str(exc)
        else:
            if not is_shop_installed(db, claims.shop):
                logger.error('Shop not installed: %s', claims.shop)
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Shop has not installed this app')
            return ShopPrincipal(shop=claims.shop, user_id=claims.user_id, verified=True)

    # Local testing only: trust ?shop= for installed shops.
    shop_param = request.query_params.get('shop')
    if settings.is_development and shop_param:
        logger.warning('DEV-ONLY: using URL shop param instead of a session token: %s', shop_param)
        if is_shop_installed(db, shop_param):
            return ShopPrincipal(shop=shop_param, user_id=None, verified=False)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Shop not installed')

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=error)
