"""SQLAlchemy plumbing for the checkout stores.

The ledger, reservation and idempotency tables each belong to exactly one
component; they only share the ``MetaData`` object so schema management can
create and drop them together.
"""

from datetime import UTC, datetime

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

metadata = MetaData()


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands timezone-aware columns back naive; treat those as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def make_engine(database_uri: str) -> Engine:
    """Create an engine suitable for the checkout stores.

    In-memory SQLite gets a single shared connection so every session sees
    the same database.
    """
    if database_uri.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        if ":memory:" in database_uri or database_uri in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_uri, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return engine
    return create_engine(database_uri, pool_pre_ping=True)


_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the process-wide engine for ``CHECKOUT_DATABASE_URL``."""
    global _engine
    if _engine is None:
        from shared import config

        _engine = make_engine(config.CHECKOUT_DATABASE_URL or "sqlite://")
    return _engine


def reset_engine() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def setup_db(engine: Engine) -> None:
    """Create all checkout tables."""
    # Table definitions register themselves on import
    import inventory.ledger.sqlalchemy_store  # noqa: F401
    import inventory.reservation.sqlalchemy_store  # noqa: F401
    import shared.idempotency  # noqa: F401

    metadata.create_all(engine)


def drop_db(engine: Engine) -> None:
    """Drop all checkout tables."""
    import inventory.ledger.sqlalchemy_store  # noqa: F401
    import inventory.reservation.sqlalchemy_store  # noqa: F401
    import shared.idempotency  # noqa: F401

    metadata.drop_all(engine)


def setup_domain_db(domain) -> None:
    """Create the tables of a protean domain's SQL providers (projections)."""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in ("sqlite", "postgresql"):
                engine = create_engine(provider.conn_info["database_uri"])

                # Accessing _dao registers the model with the provider's metadata
                for _, record in domain.registry.projections.items():
                    if record.cls.meta_.provider == provider.name:
                        domain.repository_for(record.cls)._dao  # noqa: B018

                provider._metadata.create_all(engine)


def drop_domain_db(domain) -> None:
    """Drop the tables of a protean domain's SQL providers."""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in ("sqlite", "postgresql"):
                engine = create_engine(provider.conn_info["database_uri"])
                provider._metadata.drop_all(engine)
