from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from jobdesk.config import load_settings


def get_engine(db_url: str | None = None) -> AsyncEngine:
    return create_async_engine(db_url or load_settings().database_url, future=True)
