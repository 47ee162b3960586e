import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from resume_coach.db import get_db
from resume_coach.dependencies import get_admin_user
from resume_coach.email_service import send_email
from resume_coach.models_db import NewsletterSubscriber, User

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Newsletter"])

BATCH_SIZE = 50
BATCH_DELAY_SECONDS = 1.0


class SubscribeRequest(BaseModel):
    email: EmailStr


class SendNewsletterRequest(BaseModel):
    subject: str = Field(min_length=1)
    html: str = Field(min_length=1)
    test_email: Optional[EmailStr] = None
    send_to_all: bool = False


@router.post("/newsletter/subscribe")
async def subscribe(request: SubscribeRequest, db: AsyncSession = Depends(get_db)):
    email = request.email.lower()
    subscriber = await db.scalar(select(NewsletterSubscriber).where(NewsletterSubscriber.email == email))

    if subscriber and subscriber.status == 'subscribed':
        return {"success": True, "message": "You are already subscribed to our newsletter!"}

    if subscriber:
        subscriber.status = 'subscribed'
        await db.commit()
        logger.info(f"Resubscribed {email} to the newsletter")
        return {"success": True, "message": "You have been resubscribed to our newsletter!"}

    db.add(NewsletterSubscriber(email=email, status='subscribed', source='footer'))
    await db.commit()
    logger.info(f"New newsletter subscriber: {email}")
    return JSONResponse(
        status_code=201,
        content={"success": True, "message": "Thanks for subscribing to our newsletter!"},
    )


async def send_newsletter_to_all_subscribers(db: AsyncSession, subject: str, html: str) -> dict:
    """Mail every subscribed address in Bcc batches, pausing between batches."""
    total = await db.scalar(
        select(func.count(NewsletterSubscriber.id)).where(NewsletterSubscriber.status == 'subscribed')
    ) or 0
    sent = 0
    offset = 0

    while offset < total:
        result = await db.execute(
            select(NewsletterSubscriber.email)
            .where(NewsletterSubscriber.status == 'subscribed')
            .order_by(NewsletterSubscriber.created_at, NewsletterSubscriber.id)
            .offset(offset)
            .limit(BATCH_SIZE)
        )
        emails = list(result.scalars().all())
        if not emails:
            break

        if await send_email(emails, subject, html, bcc=True):
            sent += len(emails)
        else:
            logger.error(f"Newsletter batch at offset {offset} ({len(emails)} addresses) failed")

        offset += len(emails)
        if len(emails) < BATCH_SIZE:
            break
        await asyncio.sleep(BATCH_DELAY_SECONDS)

    return {"total": total, "sent": sent}


@router.post("/admin/newsletter/send")
async def send_newsletter(
    request: SendNewsletterRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    if request.test_email:
        if not await send_email([request.test_email], request.subject, request.html):
            raise HTTPException(status_code=500, detail="Failed to send test email")
        return {"message": f"Test email sent to {request.test_email}"}

    if not request.send_to_all:
        raise HTTPException(status_code=400, detail="Please specify a test email or set send_to_all to true")

    logger.info(f"Admin {admin.id} is sending newsletter '{request.subject}' to all subscribers")
    result = await send_newsletter_to_all_subscribers(db, request.subject, request.html)

    if result["total"] and not result["sent"]:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to send newsletter to all subscribers", **result},
        )
    return {
        "message": f"Newsletter sent to {result['sent']} of {result['total']} subscribers",
        **result,
    }
