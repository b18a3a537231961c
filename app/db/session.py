from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from app.core.config import settings
from fastapi import HTTPException


def _connect_args(url: str) -> dict:
    # sqlite connections are shared with the FastAPI threadpool
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {"connect_timeout": 30}


# Create the SQLAlchemy engine
engine = create_engine(settings.DATABASE_URL,
                       connect_args=_connect_args(settings.DATABASE_URL),
                       pool_pre_ping=True,
                       pool_recycle=3600,
)

# Create a configured "Session" class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# do not change the order of the code below
# Dependency that can be used in routes to get the session
def get_db() -> Session  |  HTTPException:
    db = SessionLocal()  # generate a new SessionLocal
    try:
        yield db
    except Exception as e:
        db.rollback()
        raise e
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create tables that do not exist yet."""
    from app.db.base import Base
    import app.models.authors  # noqa: F401  registers the model on Base

    Base.metadata.create_all(bind=bind or engine)
