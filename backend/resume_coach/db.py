from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
import os
import logging
from dotenv import load_dotenv
from typing import AsyncGenerator
from urllib.parse import quote_plus

from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

load_dotenv()
logger = logging.getLogger(__name__)


def build_database_url() -> str:
    """
    Resolve the async database URL from the environment.

    DATABASE_URL wins; otherwise the DB_* parts are assembled into a Postgres
    URL. With neither configured a local SQLite file is used.
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return database_url

    db_user = os.getenv("DB_USER")
    db_password = os.getenv("DB_PASSWORD")
    db_host = os.getenv("DB_HOST")
    db_port = os.getenv("DB_PORT")
    db_name = os.getenv("DB_NAME")

    if all([db_user, db_password, db_host, db_port, db_name]):
        encoded_password = quote_plus(db_password)
        return f"postgresql+asyncpg://{db_user}:{encoded_password}@{db_host}:{db_port}/{db_name}"

    logger.warning("Database connection details are not configured. Falling back to local SQLite.")
    return "sqlite+aiosqlite:///./resume_coach.db"


DATABASE_URL = build_database_url()

engine = create_async_engine(DATABASE_URL, echo=os.getenv("SQL_ECHO", "False").lower() == "true")

SQLAlchemyInstrumentor().instrument(
    engine=engine.sync_engine,
    enable_commenter=True,
    commenter_options={}
)

async_session_maker = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


# for dependency injection
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session

