# storage.py
# Persistence for registrations (SQLAlchemy Core).
# DATABASE_URL first, then discrete DB_* params, then a local SQLite file.

import logging
import os
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    inspect,
    select,
)
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import text

logger = logging.getLogger(__name__)

TABLE_NAME = "inscriptions"
_SQLITE_FALLBACK_URL = "sqlite:///local_inscriptions.db"

_STORE: Dict[str, Any] = {"engine": None, "table": None}


class StorageError(Exception):
    """Raised when the store rejects or cannot perform a write."""


def _is_dsn(s: str) -> bool:
    if not s:
        return False
    s = s.strip().lower()
    return s.startswith(("postgresql://", "postgresql+psycopg2://", "postgresql+pg8000://", "sqlite://"))


def _sqlalchemy_url() -> str | URL:
    # 1) DATABASE_URL wins
    db_url = os.getenv("DATABASE_URL")
    if db_url and _is_dsn(db_url):
        return db_url

    # 2) Traditional TCP params
    user = os.getenv("DB_USER")
    pwd  = os.getenv("DB_PASS") or os.getenv("DB_PASSWORD")
    name = os.getenv("DB_NAME")
    host = os.getenv("DB_HOST")
    port = os.getenv("DB_PORT")
    if host and user and pwd and name:
        return URL.create(
            drivername="postgresql+psycopg2",
            username=user,
            password=pwd,
            host=host,
            port=int(port) if port else None,
            database=name,
        )

    # 3) Fallback: local SQLite
    return _SQLITE_FALLBACK_URL


def _create_engine(url: str | URL):
    if str(url) in ("sqlite://", "sqlite:///:memory:"):
        # single shared connection so every checkout sees the same in-memory DB
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    if str(url).startswith("sqlite"):
        return create_engine(url, future=True)
    return create_engine(url, pool_pre_ping=True, pool_recycle=1800, future=True)


def _build_inscriptions_table(meta: MetaData, schema: str | None = None) -> Table:
    return Table(
        TABLE_NAME,
        meta,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("nom", String(120), nullable=False),
        Column("prenom", String(120), nullable=False),
        Column("email", String(255), nullable=False),
        Column("telephone", String(60), nullable=False),
        Column("poste", String(255)),
        Column("startup", String(255)),
        Column("pays", String(120)),
        Column("adresse", Text),
        Column("ateliers", Text, nullable=False),
        Column("created_at", DateTime(timezone=True), nullable=False),
        schema=schema,
    )


def _init_table(eng) -> Table:
    meta = MetaData()
    schema = None
    if eng.dialect.name == "postgresql":
        target_schema = os.getenv("DB_SCHEMA", "public")
        if TABLE_NAME in set(inspect(eng).get_table_names(schema=target_schema)):
            return Table(TABLE_NAME, meta, schema=target_schema, autoload_with=eng)
        schema = target_schema
    table = _build_inscriptions_table(meta, schema=schema)
    meta.create_all(eng, checkfirst=True)
    return table


def configure_store(url: str | URL | None = None) -> Table:
    """Point the store at ``url`` (or the environment's URL) and ensure the table exists."""
    url = url or _sqlalchemy_url()
    eng = _create_engine(url)
    try:
        table = _init_table(eng)
    except SQLAlchemyError:
        if str(url).startswith("sqlite"):
            raise
        logger.exception("Primary database unavailable; falling back to SQLite at %s", _SQLITE_FALLBACK_URL)
        eng = _create_engine(_SQLITE_FALLBACK_URL)
        table = _init_table(eng)

    previous = _STORE.get("engine")
    _STORE["engine"] = eng
    _STORE["table"] = table
    if previous is not None and previous is not eng:
        previous.dispose()
    logger.info("Registration store ready (dialect=%s)", eng.dialect.name)
    return table


def _store() -> tuple[Any, Table]:
    if _STORE["engine"] is None:
        configure_store()
    return _STORE["engine"], _STORE["table"]


def _serialize(row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    for key, value in out.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
    return out


def insert_inscription(row: Dict[str, Any]) -> Dict[str, Any]:
    """Insert one registration and return the stored row as a JSON-ready dict."""
    eng, table = _store()
    values = {k: v for k, v in row.items() if k in table.c}
    try:
        with eng.begin() as conn:
            result = conn.execute(table.insert().values(**values).returning(*table.c))
            inserted = result.mappings().one()
    except SQLAlchemyError as exc:
        detail = str(getattr(exc, "orig", None) or exc)
        raise StorageError(detail) from exc
    return _serialize(inserted)


def count_inscriptions() -> int:
    eng, table = _store()
    with eng.connect() as conn:
        return conn.execute(select(func.count()).select_from(table)).scalar_one()


def ping() -> bool:
    eng, _ = _store()
    try:
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.exception("Database ping failed")
        return False
