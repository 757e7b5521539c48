"""
Async engine, session factory and declarative base for the back-office tables.

Every record table keys on a string UUID (`new_id`) so ids can be handed to
clients and compared as plain strings in ownership checks.
"""

from uuid import uuid4

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from garagehub.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    pool_recycle=3600,
)

# Request sessions commit in get_db; failure audit entries open their own.
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass
