import uuid

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from resume_coach.main import app
from resume_coach.db import get_db
from resume_coach.dependencies import get_current_active_user
from resume_coach.models_db import Base, User

# Use a separate in-memory SQLite database for testing
DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# One shared connection, otherwise every connection sees its own empty database.
engine = create_async_engine(DATABASE_URL, poolclass=StaticPool, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(scope="function")
async def db_session():
    """Fixture to create a new database session for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        await session.close()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession):
    """Fixture to create a test client for the FastAPI app."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, is_admin: bool = False) -> User:
    user = User(
        id=str(uuid.uuid4()),
        external_id=f"sb_{uuid.uuid4().hex[:12]}",
        email="admin@example.com" if is_admin else "test@example.com",
        name="Test Admin" if is_admin else "Test User",
        is_admin=is_admin,
        active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def user(db_session):
    return await _create_user(db_session)


@pytest.fixture
async def admin_user(db_session):
    return await _create_user(db_session, is_admin=True)


def override_get_current_active_user(user: User):
    """Factory to create a dependency override for the current user."""
    async def _override():
        return user
    return _override


@pytest.fixture
async def auth_client(client: AsyncClient, user: User):
    """Client whose requests are authenticated as `user`."""
    app.dependency_overrides[get_current_active_user] = override_get_current_active_user(user)
    yield client


@pytest.fixture
async def admin_client(client: AsyncClient, admin_user: User):
    app.dependency_overrides[get_current_active_user] = override_get_current_active_user(admin_user)
    yield client


# --- Fakes for the cover letter workflow ---

class RecordingNotifier:
    def __init__(self):
        self.successes = []
        self.errors = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class FakeLedger:
    def __init__(self, balance: int = 50):
        self.balance = balance
        self.spends = []
        self.refunds = []
        self.fail_spend = None
        self.fail_balance = None
        self.decline = False

    async def get_balance(self) -> int:
        if self.fail_balance:
            raise self.fail_balance
        return self.balance

    async def use_credits(self, amount, feature, description) -> bool:
        if self.fail_spend:
            raise self.fail_spend
        if self.decline or self.balance < amount:
            return False
        self.balance -= amount
        self.spends.append((amount, feature, description))
        return True

    async def refund(self, user_id, amount, reason) -> int:
        self.balance += amount
        self.refunds.append((user_id, amount, reason))
        return self.balance


class FakeGenerationClient:
    """Returns queued responses in order; an exception in the queue is raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate(self, prompt, prompt_type) -> str:
        self.calls.append((prompt, prompt_type))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeFormStore:
    def __init__(self):
        self.records = {}
        self.saves = []
        self.deleted = []
        self.fail = None

    async def save(self, form_id, data, cover_letter, status=None) -> str:
        if self.fail:
            raise self.fail
        form_id = form_id or f"form-{len(self.records) + 1}"
        record = self.records.get(form_id, {'status': 'draft'})
        record.update(data.model_dump(mode="json"), id=form_id, cover_letter=cover_letter or None)
        if status:
            record['status'] = status
        self.records[form_id] = record
        self.saves.append((form_id, status))
        return form_id

    async def load(self, form_id):
        if self.fail:
            raise self.fail
        return dict(self.records[form_id])

    async def delete(self, form_id):
        if self.fail:
            raise self.fail
        self.records.pop(form_id, None)
        self.deleted.append(form_id)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def form_store():
    return FakeFormStore()
