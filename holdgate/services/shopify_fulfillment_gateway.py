from __future__ import annotations

import json
import logging
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from holdgate.config import settings
from holdgate.errors import GatewayError
from holdgate.services.fulfillment_gateway import FulfillmentOrder, MutationResult
from holdgate.services.identifiers import order_gid
from holdgate.services.order_notes import prepend_note, strip_note

logger = logging.getLogger(__name__)


FULFILLMENT_ORDERS_QUERY = '''
query GetFulfillmentOrders($orderId: ID!) {
  order(id: $orderId) {
    fulfillmentOrders(first: 50) {
      nodes {
        id
        status
      }
    }
  }
}
'''

HOLD_MUTATION = '''
mutation FulfillmentOrderHold($fulfillmentHold: FulfillmentOrderHoldInput!, $id: ID!) {
  fulfillmentOrderHold(fulfillmentHold: $fulfillmentHold, id: $id) {
    fulfillmentOrder {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
'''

RELEASE_MUTATION = '''
mutation FulfillmentOrderReleaseHold($id: ID!) {
  fulfillmentOrderReleaseHold(id: $id) {
    fulfillmentOrder {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
'''

ORDER_PRODUCTS_QUERY = '''
query GetOrderProducts($orderId: ID!) {
  order(id: $orderId) {
    lineItems(first: 100) {
      nodes {
        product {
          id
        }
      }
    }
  }
}
'''

ORDER_NOTE_QUERY = '''
query GetOrderNote($id: ID!) {
  order(id: $id) {
    note
  }
}
'''

ORDER_NOTE_MUTATION = '''
mutation OrderUpdate($input: OrderInput!) {
  orderUpdate(input: $input) {
    order {
      id
    }
    userErrors {
      field
      message
    }
  }
}
'''


def _user_errors(payload: dict | None) -> list[str]:
    return [error.get('message') or 'Unknown error' for error in (payload or {}).get('userErrors') or []]


class ShopifyFulfillmentGateway:
    def __init__(self, *, shop: str, access_token: str) -> None:
        if not access_token:
            raise ValueError('An offline access token is required for the Shopify gateway')
        self.shop = shop
        self.endpoint = f'https://{shop}/admin/api/{settings.shopify_api_version}/graphql.json'
        self.headers = {
            'X-Shopify-Access-Token': access_token,
            'Content-Type': 'application/json',
        }

    def _graphql(self, query: str, variables: dict) -> dict:
        data = json.dumps({'query': query, 'variables': variables}).encode('utf-8')
        req = Request(url=self.endpoint, data=data, headers=self.headers, method='POST')
        try:
            with urlopen(req, timeout=settings.shopify_timeout_seconds) as response:
                parsed = json.loads(response.read().decode('utf-8'))
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            raise GatewayError(f'Shopify API error {exc.code} for {self.shop}: {body}') from exc
        except URLError as exc:
            raise GatewayError(f'Shopify API network error for {self.shop}: {exc.reason}') from exc

        if parsed.get('errors'):
            raise GatewayError(f'Shopify API returned errors for {self.shop}: {parsed["errors"]}')
        return parsed.get('data') or {}

    def get_fulfillment_orders(self, *, order_id: str) -> list[FulfillmentOrder]:
        data = self._graphql(FULFILLMENT_ORDERS_QUERY, {'orderId': order_gid(order_id)})
        nodes = ((data.get('order') or {}).get('fulfillmentOrders') or {}).get('nodes') or []
        return [FulfillmentOrder(id=node['id'], status=node.get('status') or '') for node in nodes if node.get('id')]

    def apply_hold(
        self,
        *,
        fulfillment_order_id: str,
        reason_code: str,
        note: str,
        notify: bool = False,
    ) -> MutationResult:
        data = self._graphql(
            HOLD_MUTATION,
            {
                'id': fulfillment_order_id,
                'fulfillmentHold': {
                    'reason': reason_code,
                    'reasonNotes': note,
                    'notifyMerchant': notify,
                },
            },
        )
        return MutationResult(errors=_user_errors(data.get('fulfillmentOrderHold')))

    def release_hold(self, *, fulfillment_order_id: str) -> MutationResult:
        data = self._graphql(RELEASE_MUTATION, {'id': fulfillment_order_id})
        return MutationResult(errors=_user_errors(data.get('fulfillmentOrderReleaseHold')))

    def get_line_item_product_ids(self, *, order_id: str) -> list[str]:
        data = self._graphql(ORDER_PRODUCTS_QUERY, {'orderId': order_gid(order_id)})
        nodes = ((data.get('order') or {}).get('lineItems') or {}).get('nodes') or []
        product_ids: list[str] = []
        for node in nodes:
            product_id = (node.get('product') or {}).get('id')
            # custom line items have no product
            if product_id and product_id not in product_ids:
                product_ids.append(product_id)
        return product_ids

    def _get_order_note(self, order_id: str) -> str:
        data = self._graphql(ORDER_NOTE_QUERY, {'id': order_gid(order_id)})
        return (data.get('order') or {}).get('note') or ''

    def _set_order_note(self, order_id: str, note: str) -> bool:
        data = self._graphql(ORDER_NOTE_MUTATION, {'input': {'id': order_gid(order_id), 'note': note}})
        errors = _user_errors(data.get('orderUpdate'))
        if errors:
            logger.error('Order note update rejected for order %s on %s: %s', order_id, self.shop, errors)
            return False
        return True

    def post_order_note(self, *, order_id: str, text: str, marker: str) -> bool:
        new_note = prepend_note(self._get_order_note(order_id), text, marker)
        if new_note is None:
            return True
        return self._set_order_note(order_id, new_note)

    def remove_order_note_matching(self, *, order_id: str, marker: str) -> bool:
        new_note = strip_note(self._get_order_note(order_id), marker)
        if new_note is None:
            return True
        return self._set_order_note(order_id, new_note)
