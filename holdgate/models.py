from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    pass


class ShopInstallation(Base):
    __tablename__ = 'shop_installations'

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    scope: Mapped[str | None] = mapped_column(Text)
    installed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AppSetting(Base):
    __tablename__ = 'app_settings'

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    require_acknowledgment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    require_photo_proof: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    block_fulfillment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProductNote(Base):
    __tablename__ = 'product_notes'
    __table_args__ = (
        Index('product_notes_shop_product_idx', 'shop_domain', 'product_id'),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(Text, nullable=False)
    updated_by: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    photos: Mapped[list[ProductNotePhoto]] = relationship(
        back_populates='note',
        cascade='all, delete-orphan',
        order_by='ProductNotePhoto.created_at',
    )


class ProductNotePhoto(Base):
    __tablename__ = 'product_note_photos'

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    note_id: Mapped[str] = mapped_column(String(32), ForeignKey('product_notes.id', ondelete='CASCADE'), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    note: Mapped[ProductNote] = relationship(back_populates='photos')


class OrderAcknowledgment(Base):
    __tablename__ = 'order_acknowledgments'
    __table_args__ = (
        UniqueConstraint('order_id', 'note_id', name='order_acknowledgments_order_note_key'),
        Index('order_acknowledgments_shop_order_idx', 'shop_domain', 'order_id'),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    note_id: Mapped[str] = mapped_column(String(32), nullable=False)
    product_id: Mapped[str] = mapped_column(Text, nullable=False)
    acknowledged_by: Mapped[str] = mapped_column(Text, nullable=False)
    acknowledged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    session_id: Mapped[str | None] = mapped_column(String(255))
    proof_photo_url: Mapped[str | None] = mapped_column(Text)


class OrderReleaseAuthorization(Base):
    __tablename__ = 'order_release_authorizations'
    __table_args__ = (
        UniqueConstraint('order_id', 'shop_domain', name='order_release_authorizations_order_shop_key'),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    actor: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[str | None] = mapped_column(Text)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
