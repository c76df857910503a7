from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from fulfillment.config import settings


def build_engine(url: str):
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(url, connect_args=connect_args)

    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,      # checks dead connections
        pool_recycle=1800        # refresh every 30 min
    )


engine = build_engine(settings.database_url)


def create_db_and_tables(bind=None):
    from fulfillment import models  # noqa: F401  registers every table
    SQLModel.metadata.create_all(bind or engine)


def session_factory():
    """Fresh session on the process engine, for work outside a request."""
    return Session(engine)


def get_session():
    with Session(engine) as session:
        yield session
