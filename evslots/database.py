from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .models.generated import Base


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # check_same_thread=False: the store runs queries from worker threads
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


def make_session_factory(engine: Engine) -> sessionmaker:
    # Schema is a single table, created on demand (no migrations)
    Base.metadata.create_all(engine)
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )
