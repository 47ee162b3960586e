import logging
from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from resume_coach.db import get_db
from resume_coach.dependencies import get_current_active_user
from resume_coach.models_db import User, UserCredits, CreditTransaction, FREE_STARTING_CREDITS
from resume_coach.pricing import CREDIT_COSTS, CREDIT_PACKAGES, CreditPackage

logger = logging.getLogger(__name__)
router = APIRouter()

# --- Ledger helpers ---

async def get_or_create_balance(db: AsyncSession, user_id: str) -> UserCredits:
    """Return the user's balance row, granting the free starting credits on first use."""
    result = await db.execute(
        select(UserCredits)
        .where(UserCredits.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    balance = result.scalar_one_or_none()
    if balance:
        return balance

    logger.info(f"No credit balance for user {user_id}. Granting {FREE_STARTING_CREDITS} starting credits.")
    balance = UserCredits(user_id=user_id, credits=FREE_STARTING_CREDITS)
    db.add(balance)
    db.add(CreditTransaction(
        user_id=user_id,
        amount=FREE_STARTING_CREDITS,
        balance_after=FREE_STARTING_CREDITS,
        transaction_type='bonus',
        feature='signup',
        description='Free starting credits',
    ))
    try:
        await db.commit()
    except IntegrityError:
        # Another request created the row first.
        await db.rollback()
        result = await db.execute(select(UserCredits).where(UserCredits.user_id == user_id))
        return result.scalar_one()
    await db.refresh(balance)
    return balance


async def use_credits(
    db: AsyncSession, user_id: str, amount: int, feature: str, description: str
) -> Optional[int]:
    """
    Spend credits with a single decrement-if-sufficient update.

    Returns the new balance, or None when the balance does not cover the amount.
    """
    if amount <= 0:
        raise ValueError("Credit amount must be positive")

    await get_or_create_balance(db, user_id)
    result = await db.execute(
        update(UserCredits)
        .where(UserCredits.user_id == user_id, UserCredits.credits >= amount)
        .values(credits=UserCredits.credits - amount)
        .returning(UserCredits.credits)
        .execution_options(synchronize_session=False)
    )
    new_balance = result.scalar_one_or_none()
    if new_balance is None:
        # Nothing matched, so nothing changed.
        logger.warning(f"User {user_id} has insufficient credits for {amount} ({feature}).")
        return None

    db.add(CreditTransaction(
        user_id=user_id,
        amount=-amount,
        balance_after=new_balance,
        transaction_type='usage',
        feature=feature,
        description=description,
    ))
    await db.commit()
    logger.info(f"User {user_id} used {amount} credits for '{description}'. Balance: {new_balance}")
    return new_balance


async def add_credits(
    db: AsyncSession,
    user_id: str,
    amount: int,
    transaction_type: str,
    description: str,
    feature: Optional[str] = None,
    reference: Optional[str] = None,
) -> int:
    """Credit the user's balance and log the transaction. Returns the new balance."""
    if amount <= 0:
        raise ValueError("Credit amount must be positive")

    await get_or_create_balance(db, user_id)
    result = await db.execute(
        update(UserCredits)
        .where(UserCredits.user_id == user_id)
        .values(credits=UserCredits.credits + amount)
        .returning(UserCredits.credits)
        .execution_options(synchronize_session=False)
    )
    new_balance = result.scalar_one()
    db.add(CreditTransaction(
        user_id=user_id,
        amount=amount,
        balance_after=new_balance,
        transaction_type=transaction_type,
        feature=feature,
        description=description,
        reference=reference,
    ))
    await db.commit()
    logger.info(f"Added {amount} credits ({transaction_type}) to user {user_id}. Balance: {new_balance}")
    return new_balance


async def refundable_credits(db: AsyncSession, user_id: str) -> int:
    """Credits spent on features that have not been refunded yet."""
    result = await db.execute(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
            CreditTransaction.user_id == user_id,
            CreditTransaction.transaction_type.in_(['usage', 'refund']),
        )
    )
    return max(0, -int(result.scalar_one()))


async def refund_spent_credits(
    db: AsyncSession, user_id: str, amount: int, reason: str
) -> Optional[Tuple[int, int]]:
    """
    Give back credits spent on features, capped at what is still refundable.

    The balance row stays locked from the cap check to the commit, so
    concurrent refunds are checked one after another. Returns
    (previous, new) balances, or None when the amount exceeds the cap.
    """
    if amount <= 0:
        raise ValueError("Credit amount must be positive")

    await get_or_create_balance(db, user_id)
    result = await db.execute(
        select(UserCredits)
        .where(UserCredits.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    balance = result.scalar_one()

    refundable = await refundable_credits(db, user_id)
    if amount > refundable:
        # Commit to release the lock; nothing was written.
        await db.commit()
        logger.warning(f"User {user_id} requested a refund of {amount} but only {refundable} is refundable.")
        return None

    previous_credits = balance.credits
    new_credits = previous_credits + amount
    balance.credits = new_credits
    db.add(CreditTransaction(
        user_id=user_id,
        amount=amount,
        balance_after=new_credits,
        transaction_type='refund',
        feature='api-refund',
        description=reason,
    ))
    await db.commit()
    logger.info(f"Refunded {amount} credits to user {user_id}. Balance: {new_credits}")
    return previous_credits, new_credits


async def list_transactions(db: AsyncSession, user_id: str, limit: int = 50) -> List[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# --- Pydantic Models ---

class CreditTransactionOut(BaseModel):
    id: str
    amount: int
    balance_after: int
    transaction_type: str
    feature: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreditsOut(BaseModel):
    user_id: str
    credits: int
    history: List[CreditTransactionOut]


class UseCreditsRequest(BaseModel):
    amount: int = Field(gt=0)
    feature: str
    description: str


class UseCreditsResponse(BaseModel):
    success: bool
    credits: int


class RefundCreditsRequest(BaseModel):
    userId: str
    amount: int = Field(gt=0)
    reason: str = Field(min_length=1)


# --- Credit Endpoints ---

@router.get("/credits", response_model=CreditsOut)
async def get_credits(
    db: AsyncSession = Depends(get_db),
    db_user: User = Depends(get_current_active_user)
):
    """
    Returns the current balance and the 50 most recent credit transactions.
    """
    balance = await get_or_create_balance(db, db_user.id)
    history = await list_transactions(db, db_user.id)
    return CreditsOut(
        user_id=db_user.id,
        credits=balance.credits,
        history=[CreditTransactionOut.model_validate(item) for item in history],
    )


@router.get("/credits/costs")
async def get_credit_costs():
    return CREDIT_COSTS


@router.get("/credits/packages", response_model=List[CreditPackage])
async def get_credit_packages():
    return CREDIT_PACKAGES


@router.post("/credits/use", response_model=UseCreditsResponse)
async def spend_credits(
    request: UseCreditsRequest,
    db: AsyncSession = Depends(get_db),
    db_user: User = Depends(get_current_active_user)
):
    """
    Spends credits for a feature. A balance that does not cover the amount is
    declined with success=false and no change.
    """
    try:
        new_balance = await use_credits(db, db_user.id, request.amount, request.feature, request.description)
    except Exception as e:
        logger.error(f"Error using credits for user {db_user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process credits.")

    if new_balance is None:
        balance = await get_or_create_balance(db, db_user.id)
        return UseCreditsResponse(success=False, credits=balance.credits)
    return UseCreditsResponse(success=True, credits=new_balance)


@router.post("/refund-credits")
async def refund_credits(
    request: RefundCreditsRequest,
    db: AsyncSession = Depends(get_db),
    db_user: User = Depends(get_current_active_user)
):
    """
    Gives back credits spent on an AI request that did not deliver a result.
    """
    if request.userId not in (db_user.id, db_user.external_id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        refunded = await refund_spent_credits(db, db_user.id, request.amount, request.reason)
    except Exception as e:
        logger.error(f"Error refunding credits for user {db_user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating credits")

    if refunded is None:
        raise HTTPException(status_code=400, detail="Refund exceeds credits spent")

    previous_credits, new_credits = refunded
    return {
        "success": True,
        "previousCredits": previous_credits,
        "newCredits": new_credits,
        "refunded": request.amount,
    }
