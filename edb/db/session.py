from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from edb.config import settings

Base = declarative_base()

engine_options = {"echo": settings.DATABASE_ECHO}
if settings.DATABASE_URL.startswith("sqlite"):
    engine_options["connect_args"] = {"check_same_thread": False}
    if ":memory:" in settings.DATABASE_URL:
        # Une seule connexion partagée, sinon chaque session voit une base vide
        engine_options["poolclass"] = StaticPool

# Créer le moteur async
engine = create_async_engine(settings.DATABASE_URL, **engine_options)

# Session async
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# Dépendance FastAPI pour obtenir la session
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
