"""
SQLAlchemy Async Database Configuration.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.config import get_settings
from app.models.base import Base  # Import from models package

settings = get_settings()

# Async Engine with connection pool configuration.
# The engine only reads; analytics queries are short and bursty.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    future=True,
    pool_size=20,
    max_overflow=40,
    pool_timeout=10,       # Fail fast instead of blocking for 30s
    pool_recycle=900,
    pool_pre_ping=True,    # Verify connections before use
)

# Async Session Factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """Dependency for FastAPI routes to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
