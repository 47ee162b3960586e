import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from resume_coach.db import get_db
from resume_coach.dependencies import get_current_active_user
from resume_coach.models_db import User, CoverLetterForm
from resume_coach.cover_letter.form_state import MAX_CHARS, Tone

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cover-letter-forms", tags=["Cover Letters"])

FormStatus = Literal['draft', 'completed']


class CoverLetterFormIn(BaseModel):
    full_name: str = ""
    email: str = ""
    phone: str = ""
    company_name: str = ""
    job_title: str = ""
    job_description: str = Field("", max_length=MAX_CHARS['job_description'])
    relevant_experience: str = Field("", max_length=MAX_CHARS['relevant_experience'])
    recipient_name: str = ""
    recipient_title: str = ""
    company_address: str = ""
    tone: Tone = Tone.PROFESSIONAL
    cover_letter: Optional[str] = None
    status: Optional[FormStatus] = None


class CoverLetterFormOut(BaseModel):
    id: str
    user_id: str
    full_name: str
    email: str
    phone: str
    company_name: str
    job_title: str
    job_description: str
    relevant_experience: str
    recipient_name: str
    recipient_title: str
    company_address: str
    tone: Tone
    cover_letter: Optional[str] = None
    status: FormStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


async def get_user_form(db: AsyncSession, form_id: str, user_id: str) -> CoverLetterForm:
    result = await db.execute(
        select(CoverLetterForm).where(
            CoverLetterForm.id == form_id,
            CoverLetterForm.user_id == user_id,
        )
    )
    form = result.scalar_one_or_none()
    if not form:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cover letter not found or you do not have permission to access it.",
        )
    return form


def apply_form_fields(form: CoverLetterForm, payload: CoverLetterFormIn) -> None:
    values = payload.model_dump(exclude={'status'})
    values['tone'] = payload.tone.value
    for field, value in values.items():
        setattr(form, field, value)
    # Status only changes when explicitly provided; autosaves leave it alone.
    if payload.status:
        form.status = payload.status


@router.get("", response_model=List[CoverLetterFormOut])
async def list_cover_letter_forms(
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(CoverLetterForm)
        .where(CoverLetterForm.user_id == user.id)
        .order_by(CoverLetterForm.updated_at.desc())
    )
    return result.scalars().all()


@router.post("", response_model=CoverLetterFormOut, status_code=status.HTTP_201_CREATED)
async def create_cover_letter_form(
    payload: CoverLetterFormIn,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Creates a cover letter record on its first save.
    """
    form = CoverLetterForm(user_id=user.id, status='draft')
    apply_form_fields(form, payload)
    db.add(form)
    await db.commit()
    await db.refresh(form)
    logger.info(f"Created cover letter form {form.id} for user {user.id}")
    return form


@router.get("/{form_id}", response_model=CoverLetterFormOut)
async def get_cover_letter_form(
    form_id: str,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    return await get_user_form(db, form_id, user.id)


@router.put("/{form_id}", response_model=CoverLetterFormOut)
async def update_cover_letter_form(
    form_id: str,
    payload: CoverLetterFormIn,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Overwrites the stored fields of an existing cover letter record.
    """
    form = await get_user_form(db, form_id, user.id)
    apply_form_fields(form, payload)
    form.updated_at = datetime.utcnow()
    await db.commit()
    await db.refresh(form)
    logger.info(f"Updated cover letter form {form.id} (status: {form.status})")
    return form


@router.delete("/{form_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_cover_letter_form(
    form_id: str,
    user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    form = await get_user_form(db, form_id, user.id)
    await db.delete(form)
    await db.commit()
    logger.info(f"Deleted cover letter form {form_id} for user {user.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
