import os
import stripe
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, Header
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from resume_coach.db import get_db
from resume_coach.models_db import User, CreditTransaction
from resume_coach.dependencies import get_current_active_user
from resume_coach.credits import add_credits
from resume_coach.pricing import get_credit_package

logger = logging.getLogger(__name__)
router = APIRouter()

# --- Stripe Configuration ---
stripe.api_key = os.getenv("STRIPE_API_KEY")
if not stripe.api_key:
    logger.critical("STRIPE_API_KEY is not set. Credit purchases will not work.")

webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
app_url = os.getenv("APP_URL", "http://localhost:3000")


class CheckoutRequest(BaseModel):
    package_id: str


@router.post("/create-checkout-session")
async def create_checkout_session(
    request: CheckoutRequest,
    db_user: User = Depends(get_current_active_user)
):
    """
    Creates a one-off Stripe Checkout session for a credit package.
    """
    package = get_credit_package(request.package_id)
    if not package:
        raise HTTPException(status_code=404, detail="Credit package not found.")

    try:
        checkout_session = stripe.checkout.Session.create(
            payment_method_types=['card'],
            mode='payment',
            customer_email=db_user.email,
            line_items=[{
                'price_data': {
                    'currency': 'usd',
                    'unit_amount': int(round(package.price * 100)),
                    'product_data': {'name': f"{package.name} - {package.credits} credits"},
                },
                'quantity': 1,
            }],
            success_url=f"{app_url}/pricing?checkout=success",
            cancel_url=f"{app_url}/pricing?checkout=cancel",
            metadata={'user_id': db_user.id, 'package_id': package.id},
        )
    except Exception as e:
        logger.error(f"Failed to create Stripe checkout session for user {db_user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create checkout session.")

    logger.info(f"Created checkout session {checkout_session.id} for user {db_user.id} ({package.id}).")
    return {"url": checkout_session.url}


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: AsyncSession = Depends(get_db)
):
    if not webhook_secret:
        logger.error("Stripe webhook secret is not configured.")
        return {"status": "error", "message": "Webhook secret not configured."}

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(
            payload=payload, sig_header=stripe_signature, secret=webhook_secret
        )
    except ValueError as e:
        logger.error(f"Webhook error - Invalid payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Webhook error - Invalid signature: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event['type']
    data = event['data']['object']

    if event_type != 'checkout.session.completed':
        logger.info(f"Unhandled Stripe event type: {event_type}")
        return {"status": "ignored"}

    metadata = data.get('metadata') or {}
    user_id = metadata.get('user_id')
    package = get_credit_package(metadata.get('package_id', ''))
    session_id = data.get('id')

    if not user_id or not package:
        logger.error(f"Webhook checkout session {session_id} is missing user_id or package_id metadata.")
        return {"status": "error", "message": "Missing metadata"}

    if data.get('payment_status') not in (None, 'paid'):
        logger.info(f"Checkout session {session_id} completed without payment (status {data.get('payment_status')}).")
        return {"status": "pending"}

    existing = await db.scalar(select(CreditTransaction).where(CreditTransaction.reference == session_id))
    if existing:
        logger.info(f"Checkout session {session_id} was already credited.")
        return {"status": "duplicate"}

    user = await db.get(User, user_id)
    if not user:
        logger.error(f"Webhook error: User {user_id} not found.")
        return {"status": "error", "message": "User not found"}

    new_balance = await add_credits(
        db,
        user.id,
        package.credits,
        'purchase',
        f"Purchased {package.name} package",
        feature='credits',
        reference=session_id,
    )
    logger.info(f"User {user.id} purchased {package.credits} credits. Balance: {new_balance}")
    return {"status": "success", "credits": new_balance}
