from collections.abc import Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from academy_office.config import settings


class Base(DeclarativeBase):
    pass


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly on pysqlite.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(connection) -> None:
    connection.exec_driver_sql("BEGIN")


def build_engine(database_url: str, **kwargs) -> Engine:
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        created = create_engine(database_url, connect_args=connect_args, **kwargs)
        event.listen(created, "connect", _configure_sqlite_connection)
        event.listen(created, "begin", _begin_sqlite_transaction)
        return created
    return create_engine(database_url, pool_pre_ping=True, **kwargs)


def build_session_factory(engine_: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine_, autoflush=False, autocommit=False)


engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
