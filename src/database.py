from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from config.settings import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: str = None) -> AsyncEngine:
    """
    Create an async engine for the forecasting database

    SQLite (used for local runs and tests) takes no pool sizing options.
    """
    database_url = database_url or settings.DATABASE_URL

    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=settings.DEBUG)

    return create_async_engine(
        database_url,
        echo=settings.DEBUG,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncSession:
    """
    FastAPI dependency yielding one session per request

    Usage:
        @app.get("/api/v1/forecasts/{forecast_date}")
        async def list_forecasts(forecast_date: date, db: AsyncSession = Depends(get_db)):
            service = ForecastingService(db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = None):
    """Create forecasting tables (alembic manages production schemas)"""
    from src.models.database import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized successfully")


async def drop_db(bind: AsyncEngine = None):
    """Drop all database tables (use with caution!)"""
    from src.models.database import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    logger.warning("All database tables dropped")
