from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def engine_options(database_url: str, timeout: float = 10.0) -> dict:
    """Keyword arguments for ``create_engine`` so no store call waits forever.

    SQLite needs ``check_same_thread=False`` because FastAPI runs sync
    routes in a thread pool, and a busy ``timeout`` so a writer waiting on
    the database lock gives up instead of hanging the request. An in-memory
    URL gets a single shared connection so every session sees the same data.

    PostgreSQL gets ``lock_timeout`` and ``statement_timeout`` session
    settings, which bound the wait on a row lock held by a concurrent
    purchase. Other server databases only get ``pool_timeout``, which limits
    the wait for a pooled connection but not for row locks; configure a lock
    timeout on the server for those.
    """
    kwargs = {"future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": timeout}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs

    kwargs["pool_timeout"] = timeout
    kwargs["pool_pre_ping"] = True
    if database_url.startswith("postgresql"):
        ms = int(timeout * 1000)
        kwargs["connect_args"] = {"options": f"-c lock_timeout={ms} -c statement_timeout={ms}"}
    return kwargs


def make_engine(database_url: str, timeout: float = 10.0) -> Engine:
    return create_engine(database_url, **engine_options(database_url, timeout))


def make_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine, future=True)


def init_db(engine: Engine) -> None:
    # Create tables if not existing. In production, use Alembic.
    from . import models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(bind=engine)
