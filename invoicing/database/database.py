from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from invoicing.core.config import settings
import logging

logger = logging.getLogger(__name__)


def _engine_options() -> dict:
    # NullPool does not accept sizing arguments
    if settings.ENVIRONMENT == "test":
        return {"poolclass": NullPool}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


# Async engine for application use
async_engine = create_async_engine(
    settings.async_database_url,
    echo=settings.DEBUG,
    **_engine_options()
)

# Async session for application
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)

Base = declarative_base()


async def get_async_db() -> AsyncSession:
    """Genera una sesión de base de datos asíncrona para endpoints."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database error: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_tables() -> None:
    """Crear tablas (solo desarrollo; en producción usar migraciones)."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
