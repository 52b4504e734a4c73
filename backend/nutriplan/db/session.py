"""
Database engine, session factory and helpers for running blocking
database work from coroutines.
"""
import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Generator, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from nutriplan.core.config import get_settings
from nutriplan.db.models import Base

T = TypeVar("T")

settings = get_settings()

_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Shared executor for DB calls made from async code
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="nutriplan-db")


def init_db(bind=None) -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a session and always closes it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking callable in the shared DB executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, partial(func, *args, **kwargs))
