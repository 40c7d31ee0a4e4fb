"""Engine, session factory and the FastAPI session dependency"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from revshare.core.config import settings
from revshare.models.base import Base


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Request handlers and background tasks share connections across threads
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create any missing tables; migrations own schema changes in production"""
    import revshare.models  # noqa: F401  registers every model with Base.metadata
    Base.metadata.create_all(bind=engine)
