# backend/switchboard/api/contacts.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import or_
from typing import List, Optional
import logging

from switchboard.db.database import get_db
from switchboard.models.models import User, Contact
from switchboard.schemas.schemas import ContactCreate, ContactUpdate, ContactResponse, MessageResponse
from switchboard.auth.auth import get_current_user
from switchboard.core.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contacts", tags=["contacts"])


async def get_contact_or_404(db: AsyncSession, contact_id: int) -> Contact:
    result = await db.execute(select(Contact).where(Contact.id == contact_id))
    contact = result.scalar_one_or_none()
    if not contact:
        raise NotFound("Contact not found")
    return contact


@router.get("", response_model=List[ContactResponse])
async def list_contacts(
    search: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List contacts, optionally filtered by name, phone or company."""
    query = select(Contact).order_by(Contact.name)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Contact.name.ilike(pattern),
            Contact.phone.ilike(pattern),
            Contact.company.ilike(pattern)
        ))

    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(
    contact_data: ContactCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    contact = Contact(**contact_data.model_dump(), created_by=current_user.id)
    db.add(contact)
    await db.commit()
    await db.refresh(contact)

    logger.info(f"Contact {contact.id} created by user {current_user.id}")
    return contact


@router.get("/{contact_id}", response_model=ContactResponse)
async def get_contact(
    contact_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await get_contact_or_404(db, contact_id)


@router.put("/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: int,
    contact_data: ContactUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    contact = await get_contact_or_404(db, contact_id)
    changes = contact_data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")

    for field, value in changes.items():
        # name and phone are required; null means "leave unchanged"
        if value is None and field in ("name", "phone"):
            continue
        setattr(contact, field, value)

    await db.commit()
    await db.refresh(contact)
    return contact


@router.delete("/{contact_id}", response_model=MessageResponse)
async def delete_contact(
    contact_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    contact = await get_contact_or_404(db, contact_id)
    await db.delete(contact)
    await db.commit()

    logger.info(f"Contact {contact_id} deleted by user {current_user.id}")
    return MessageResponse(message="Contact deleted successfully")
