from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from deliveryaddr.core.config import settings

_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")

Base = declarative_base()


def create_db_engine(url: str) -> Engine:
    """
    Engine for DATABASE_URL.
    SQLite connections are shared with the bulk worker threads, and an
    in-memory SQLite database lives on a single pooled connection so every
    session sees the same tables.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    if url in _MEMORY_SQLITE_URLS:
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, connect_args={"check_same_thread": False})


def create_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


def init_db(bind: Engine) -> None:
    """Create the address_logs / address_learning_data tables (테이블 생성)."""
    from deliveryaddr.models import address, learning  # noqa: F401 (register tables)

    Base.metadata.create_all(bind=bind)


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = create_session_factory(engine)


# Dependency (의존성 주입)
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
