"""
Database configuration and session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from contextlib import contextmanager
import logging

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()

def make_engine(url: str = DATABASE_URL):
    """Create an engine; sqlite connections are shared across worker threads"""
    return create_engine(
        url,
        future=True,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {}
    )

def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

def init_db(engine):
    """Initialize database tables"""
    # Make sure all models are imported so Base.metadata is populated
    from .models import installation  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

@contextmanager
def session_scope(session_factory):
    s = session_factory()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
