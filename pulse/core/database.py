from datetime import datetime, timezone

from sqlalchemy import DateTime, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.types import TypeDecorator
from pulse.core.config import settings


def utcnow() -> datetime:
    """Timezone-aware current UTC time. Default clock for all stores."""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    DateTime column that always hands back timezone-aware UTC values.

    Values are stored as naive UTC so SQLite (which drops tzinfo) and
    PostgreSQL compare them identically in WHERE clauses.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def build_engine(database_url: str, statement_timeout_ms: int = 0) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    PostgreSQL connections get a server-side statement timeout so a stuck
    query surfaces as an error instead of blocking the request.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )

    connect_args = {}
    if statement_timeout_ms:
        connect_args["options"] = f"-c statement_timeout={statement_timeout_ms}"

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using them
        pool_size=10,  # Connection pool size
        max_overflow=20,  # Allow up to 20 connections beyond pool_size
        connect_args=connect_args,
    )


# Create SQLAlchemy engine
engine = build_engine(settings.DATABASE_URL, settings.DB_STATEMENT_TIMEOUT_MS)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency function to get database session.
    Used in FastAPI endpoints with Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Register models on the metadata.

    Tables are created by Alembic ("alembic upgrade head"), except for local
    SQLite runs where create_all keeps the dev loop short.
    """
    from pulse.models import user, session, single_use_token  # noqa: F401
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
