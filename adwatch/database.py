import ssl
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from adwatch.config import get_settings

settings = get_settings()

LOCAL_HOSTS = {"localhost", "127.0.0.1", "postgres"}


def ssl_connect_args(url: str, verify: bool = False) -> dict:
    """asyncpg connect args: TLS for anything outside the local/compose network.

    asyncpg takes an ``ssl.SSLContext`` rather than libpq's ``sslmode``.
    """
    if urlparse(url).hostname in LOCAL_HOSTS:
        return {}
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return {"ssl": ctx}


# Sync workers and the API share one database; keep the per-process pool small
engine = create_async_engine(
    settings.async_database_url,
    echo=settings.app_debug,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    connect_args=ssl_connect_args(settings.async_database_url, settings.database_ssl_verify),
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
