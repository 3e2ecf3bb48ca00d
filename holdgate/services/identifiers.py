from __future__ import annotations

import re

_GID_RE = re.compile(r'^gid://shopify/(?P<kind>\w+)/(?P<id>\d+)')


def normalize_order_id(value: str | int) -> str:
    """Return the numeric id for either ``123`` or ``gid://shopify/Order/123``."""
    raw = str(value).strip()
    match = _GID_RE.match(raw)
    if match and match.group('kind') == 'Order':
        return match.group('id')
    return raw


def order_gid(order_id: str | int) -> str:
    return f'gid://shopify/Order/{normalize_order_id(order_id)}'


def product_gid(product_id: str | int) -> str:
    raw = str(product_id).strip()
    if raw.startswith('gid://'):
        return raw
    return f'gid://shopify/Product/{raw}'
