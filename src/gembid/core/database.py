from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from gembid.core.config import settings


def _engine_options(url: str) -> dict:
    """Pool settings for PostgreSQL; other backends keep SQLAlchemy defaults."""
    if not url.startswith("postgresql"):
        return {}
    return {
        "pool_size": 15,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 180,
        "pool_pre_ping": True,
        # PgBouncer transaction mode requires disabling prepared statement cache
        "connect_args": {
            "prepared_statement_cache_size": 0,
            "command_timeout": 30,
        },
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_options(settings.DATABASE_URL),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass

