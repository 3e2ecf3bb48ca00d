from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from holdgate.auth import ShopPrincipal, get_current_shop
from holdgate.db import get_db
from holdgate.dependencies import get_client_ip
from holdgate.schemas import NoteBody, PhotoBody, note_dict, photo_dict
from holdgate.services import note_service
from holdgate.services.audit_service import log_audit

router = APIRouter(prefix='/api/products/{product_id}/notes', tags=['notes'])


@router.get('')
def list_product_notes(
    product_id: str,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    notes = note_service.list_notes(db, shop=principal.shop, product_id=product_id)
    return {'notes': [note_dict(note) for note in notes]}


@router.post('')
def create_product_note(
    product_id: str,
    body: NoteBody,
    request: Request,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    try:
        note = note_service.create_note(
            db,
            shop=principal.shop,
            product_id=product_id,
            content=body.content,
            actor=principal.actor,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        shop=principal.shop,
        actor=principal.actor,
        action='CREATE',
        entity_type='PRODUCT_NOTE',
        entity_id=note.id,
        ip=get_client_ip(request),
        metadata={'productId': product_id, 'content': note.content},
    )
    db.commit()
    return {'note': note_dict(note)}


@router.put('/{note_id}')
def update_product_note(
    product_id: str,
    note_id: str,
    body: NoteBody,
    request: Request,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    existing = note_service.get_note(db, shop=principal.shop, note_id=note_id)
    old_content = existing.content if existing else None
    try:
        note = note_service.update_note(
            db,
            shop=principal.shop,
            product_id=product_id,
            note_id=note_id,
            content=body.content,
            actor=principal.actor,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_audit(
        db,
        shop=principal.shop,
        actor=principal.actor,
        action='UPDATE',
        entity_type='PRODUCT_NOTE',
        entity_id=note.id,
        ip=get_client_ip(request),
        metadata={'productId': product_id, 'oldContent': old_content, 'newContent': note.content},
    )
    db.commit()
    return {'note': note_dict(note)}


@router.delete('/{note_id}')
def delete_product_note(
    product_id: str,
    note_id: str,
    request: Request,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    try:
        note = note_service.delete_note(db, shop=principal.shop, product_id=product_id, note_id=note_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    log_audit(
        db,
        shop=principal.shop,
        actor=principal.actor,
        action='DELETE',
        entity_type='PRODUCT_NOTE',
        entity_id=note_id,
        ip=get_client_ip(request),
        metadata={'productId': product_id, 'content': note.content},
    )
    db.commit()
    return {'success': True}


@router.post('/{note_id}/photos')
def add_note_photo(
    product_id: str,
    note_id: str,
    body: PhotoBody,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    if not body.url.strip():
        raise HTTPException(status_code=400, detail='Photo url is required')
    try:
        photo = note_service.add_photo(
            db,
            shop=principal.shop,
            product_id=product_id,
            note_id=note_id,
            url=body.url.strip(),
            filename=body.filename,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return {'photo': photo_dict(photo)}


@router.delete('/{note_id}/photos/{photo_id}')
def delete_note_photo(
    product_id: str,
    note_id: str,
    photo_id: str,
    principal: ShopPrincipal = Depends(get_current_shop),
    db: Session = Depends(get_db),
):
    try:
        note_service.delete_photo(db, shop=principal.shop, product_id=product_id, note_id=note_id, photo_id=photo_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return {'success': True}
