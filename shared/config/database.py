from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from . import settings


def _execution_options() -> dict:
    # SQLite has no schemas: collapse the service schema onto the default one
    if settings.DATABASE_URL.startswith("sqlite"):
        return {"schema_translate_map": {settings.ORDER_SCHEMA: None}}
    return {}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    execution_options=_execution_options(),
)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
