from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from orderflow.config import settings

engine = create_async_engine(
    settings.database_url,
    pool_size=10,
    max_overflow=5,
    pool_pre_ping=True,
    pool_recycle=1800,
    echo=settings.log_level.lower() == "debug",
)

# Objects stay usable after commit; services return them to routers
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
