from httpx import AsyncClient
from sqlalchemy.future import select

from resume_coach.credits import refund_spent_credits, use_credits
from resume_coach.models_db import CreditTransaction, UserCredits


async def test_first_balance_read_grants_starting_credits(auth_client: AsyncClient, user):
    response = await auth_client.get("/api/credits")

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == user.id
    assert body["credits"] == 50
    assert [item["transaction_type"] for item in body["history"]] == ["bonus"]


async def test_use_credits_decrements_and_logs(auth_client: AsyncClient, user, db_session):
    response = await auth_client.post(
        "/api/credits/use",
        json={"amount": 4, "feature": "cover-letter", "description": "Generate cover letter"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "credits": 46}

    usage = await db_session.scalar(
        select(CreditTransaction).where(CreditTransaction.transaction_type == "usage")
    )
    assert usage.amount == -4
    assert usage.balance_after == 46
    assert usage.feature == "cover-letter"


async def test_use_credits_declines_without_going_negative(auth_client: AsyncClient):
    response = await auth_client.post(
        "/api/credits/use",
        json={"amount": 51, "feature": "cover-letter", "description": "Too expensive"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": False, "credits": 50}


async def test_use_credits_rejects_non_positive_amount(auth_client: AsyncClient):
    response = await auth_client.post(
        "/api/credits/use",
        json={"amount": 0, "feature": "cover-letter", "description": "Free?"},
    )
    assert response.status_code == 422


async def test_costs_and_packages_are_public(client: AsyncClient):
    costs = await client.get("/api/credits/costs")
    assert costs.json()["COVER_LETTER"] == {"GENERATE_LETTER": 4, "ANALYZE_JOB": 2}

    packages = (await client.get("/api/credits/packages")).json()
    assert [p["id"] for p in packages] == ["basic", "standard", "premium", "ultimate"]
    assert packages[1]["most_popular"] is True


async def test_refund_returns_spent_credits(auth_client: AsyncClient, user):
    await auth_client.post(
        "/api/credits/use",
        json={"amount": 4, "feature": "cover-letter", "description": "Generate cover letter"},
    )

    response = await auth_client.post(
        "/api/refund-credits",
        json={"userId": user.id, "amount": 4, "reason": "Generation failed"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "previousCredits": 46, "newCredits": 50, "refunded": 4}


async def test_refund_cannot_exceed_spent_credits(auth_client: AsyncClient, user):
    response = await auth_client.post(
        "/api/refund-credits",
        json={"userId": user.id, "amount": 10, "reason": "Free money"},
    )
    assert response.status_code == 400


async def test_refund_for_another_user_is_rejected(auth_client: AsyncClient):
    response = await auth_client.post(
        "/api/refund-credits",
        json={"userId": "someone-else", "amount": 1, "reason": "Nope"},
    )
    assert response.status_code == 401


async def test_credits_require_authentication(client: AsyncClient):
    response = await client.get("/api/credits")
    assert response.status_code == 401


async def test_repeated_refunds_stop_at_credits_spent(db_session, user):
    assert await use_credits(db_session, user.id, 4, "cover-letter", "Generate cover letter") == 46

    assert await refund_spent_credits(db_session, user.id, 3, "Generation failed") == (46, 49)
    assert await refund_spent_credits(db_session, user.id, 3, "Generation failed again") is None
    assert await refund_spent_credits(db_session, user.id, 1, "Last credit") == (49, 50)

    balance = await db_session.scalar(select(UserCredits).where(UserCredits.user_id == user.id))
    assert balance.credits == 50
    refunds = (await db_session.execute(
        select(CreditTransaction).where(CreditTransaction.transaction_type == "refund")
    )).scalars().all()
    assert sorted(item.amount for item in refunds) == [1, 3]
