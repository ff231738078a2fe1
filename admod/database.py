"""Engine and per-request sessions for the moderation store."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from admod.config import get_settings

SQLALCHEMY_DATABASE_URL = get_settings().sqlalchemy_database_url

# SQLite serves local runs and tests; anything else is the shared PostgreSQL store
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False}
    )
else:
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        pool_pre_ping=True,  # Drops connections the server closed while idle
        pool_size=5,
        max_overflow=10
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """One session per request; transitions commit or roll back inside it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
