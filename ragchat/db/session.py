from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ragchat.core.config import settings

# SQLite connections are shared across the request threadpool
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create all tables that do not exist yet."""
    # Import models so they are registered on the metadata
    import ragchat.models  # noqa: F401
    from ragchat.db.base import Base

    Base.metadata.create_all(bind=engine)
