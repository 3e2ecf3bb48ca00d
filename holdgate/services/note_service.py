from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload

from holdgate.models import OrderAcknowledgment, ProductNote, ProductNotePhoto


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def list_notes(db: Session, *, shop: str, product_id: str) -> list[ProductNote]:
    return db.execute(
        select(ProductNote)
        .options(selectinload(ProductNote.photos))
        .where(ProductNote.shop_domain == shop, ProductNote.product_id == product_id)
        .order_by(ProductNote.created_at.desc(), ProductNote.id.asc())
    ).scalars().all()


def list_notes_for_products(db: Session, *, shop: str, product_ids: list[str]) -> list[ProductNote]:
    if not product_ids:
        return []
    return db.execute(
        select(ProductNote)
        .options(selectinload(ProductNote.photos))
        .where(ProductNote.shop_domain == shop, ProductNote.product_id.in_(product_ids))
        .order_by(ProductNote.product_id.asc(), ProductNote.created_at.asc(), ProductNote.id.asc())
    ).scalars().all()


def count_notes_for_products(db: Session, *, shop: str, product_ids: list[str]) -> int:
    if not product_ids:
        return 0
    return db.execute(
        select(func.count())
        .select_from(ProductNote)
        .where(ProductNote.shop_domain == shop, ProductNote.product_id.in_(product_ids))
    ).scalar_one()


def get_note(db: Session, *, shop: str, note_id: str) -> ProductNote | None:
    return db.execute(
        select(ProductNote).where(ProductNote.id == note_id, ProductNote.shop_domain == shop)
    ).scalar_one_or_none()


def _require_note(db: Session, *, shop: str, product_id: str, note_id: str) -> ProductNote:
    note = get_note(db, shop=shop, note_id=note_id)
    if not note or note.product_id != product_id:
        raise LookupError('Note not found')
    return note


def create_note(db: Session, *, shop: str, product_id: str, content: str, actor: str) -> ProductNote:
    content = content.strip()
    if not content:
        raise ValueError('Note content is required')
    note = ProductNote(
        shop_domain=shop,
        product_id=product_id,
        content=content,
        created_by=actor,
        updated_by=actor,
    )
    db.add(note)
    db.flush()
    return note


def update_note(
    db: Session,
    *,
    shop: str,
    product_id: str,
    note_id: str,
    content: str,
    actor: str,
) -> ProductNote:
    content = content.strip()
    if not content:
        raise ValueError('Note content is required')
    note = _require_note(db, shop=shop, product_id=product_id, note_id=note_id)
    note.content = content
    note.updated_by = actor
    note.updated_at = _now()
    db.flush()
    return note


def delete_note(db: Session, *, shop: str, product_id: str, note_id: str) -> ProductNote:
    """Delete a note, its photos and every acknowledgment recorded against it."""
    note = _require_note(db, shop=shop, product_id=product_id, note_id=note_id)
    db.execute(
        delete(OrderAcknowledgment).where(
            OrderAcknowledgment.shop_domain == shop,
            OrderAcknowledgment.note_id == note_id,
        )
    )
    db.delete(note)
    db.flush()
    return note


def add_photo(
    db: Session,
    *,
    shop: str,
    product_id: str,
    note_id: str,
    url: str,
    filename: str | None,
) -> ProductNotePhoto:
    note = _require_note(db, shop=shop, product_id=product_id, note_id=note_id)
    photo = ProductNotePhoto(url=url, filename=filename)
    note.photos.append(photo)
    db.flush()
    return photo


def delete_photo(db: Session, *, shop: str, product_id: str, note_id: str, photo_id: str) -> None:
    note = _require_note(db, shop=shop, product_id=product_id, note_id=note_id)
    photo = next((p for p in note.photos if p.id == photo_id), None)
    if not photo:
        raise LookupError('Photo not found')
    note.photos.remove(photo)
    db.flush()
