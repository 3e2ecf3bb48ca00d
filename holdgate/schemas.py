from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from holdgate.models import AppSetting, OrderAcknowledgment, ProductNote, ProductNotePhoto


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class NoteBody(CamelModel):
    content: str


class PhotoBody(CamelModel):
    url: str
    filename: str | None = None


class OrderNotesBody(CamelModel):
    product_ids: list[str] = Field(alias='productIds')


class AcknowledgmentBody(CamelModel):
    note_id: str = Field(alias='noteId')
    order_id: str = Field(alias='orderId')
    product_id: str | None = Field(default=None, alias='productId')
    session_id: str | None = Field(default=None, alias='sessionId')
    all_product_ids: list[str] | None = Field(default=None, alias='allProductIds')
    proof_photo_url: str | None = Field(default=None, alias='proofPhotoUrl')


class CheckHoldBody(CamelModel):
    order_id: str = Field(alias='orderId')
    product_ids: list[str] = Field(alias='productIds')
    session_id: str | None = Field(default=None, alias='sessionId')


class OrderProductsBody(CamelModel):
    order_id: str = Field(alias='orderId')
    product_ids: list[str] = Field(alias='productIds')


class SettingsBody(CamelModel):
    require_acknowledgment: bool | None = Field(default=None, alias='requireAcknowledgment')
    require_photo_proof: bool | None = Field(default=None, alias='requirePhotoProof')
    block_fulfillment: bool | None = Field(default=None, alias='blockFulfillment')


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def photo_dict(photo: ProductNotePhoto) -> dict:
    return {
        'id': photo.id,
        'noteId': photo.note_id,
        'url': photo.url,
        'filename': photo.filename,
        'createdAt': _iso(photo.created_at),
    }


def note_dict(note: ProductNote) -> dict:
    return {
        'id': note.id,
        'shopDomain': note.shop_domain,
        'productId': note.product_id,
        'content': note.content,
        'createdBy': note.created_by,
        'updatedBy': note.updated_by,
        'createdAt': _iso(note.created_at),
        'updatedAt': _iso(note.updated_at),
        'photos': [photo_dict(photo) for photo in note.photos],
    }


def acknowledgment_dict(ack: OrderAcknowledgment) -> dict:
    return {
        'id': ack.id,
        'orderId': ack.order_id,
        'noteId': ack.note_id,
        'productId': ack.product_id,
        'shopDomain': ack.shop_domain,
        'acknowledgedBy': ack.acknowledged_by,
        'acknowledgedAt': _iso(ack.acknowledged_at),
        'sessionId': ack.session_id,
        'proofPhotoUrl': ack.proof_photo_url,
    }


def settings_dict(shop: str, row: AppSetting | None, policy) -> dict:
    return {
        'shopDomain': shop,
        'requireAcknowledgment': policy.require_acknowledgment,
        'requirePhotoProof': policy.require_photo_proof,
        'blockFulfillment': policy.block_fulfillment,
        'updatedAt': _iso(row.updated_at) if row else None,
    }
