from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, declarative_base
from commute_monitor.config import get_settings
import logging
import os

logger = logging.getLogger(__name__)
settings = get_settings()

db_url = settings.database_url

if db_url.startswith("sqlite:///./"):
    os.makedirs(os.path.dirname(db_url[len("sqlite:///"):]), exist_ok=True)

engine = create_engine(
    db_url,
    connect_args={"check_same_thread": False} if db_url.startswith("sqlite") else {}
)


# Without this, ON DELETE CASCADE on route histories doesn't fire in SQLite
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    if not db_url.startswith("sqlite"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _sqlite_col_type(col) -> str:
    """Convert a SQLAlchemy column type to a SQLite type string."""
    type_name = type(col.type).__name__
    type_map = {
        "Integer": "INTEGER",
        "Boolean": "BOOLEAN",
        "DateTime": "DATETIME",
        "Text": "TEXT",
        "JSON": "JSON",
        "String": f"VARCHAR({col.type.length})" if getattr(col.type, "length", None) else "TEXT",
    }
    return type_map.get(type_name, "TEXT")


def _sqlite_default(col) -> str:
    """Extract a DEFAULT clause from a SQLAlchemy column, or empty string."""
    if col.default is None or col.default.arg is None:
        return ""
    val = col.default.arg
    if callable(val):
        return ""
    if isinstance(val, bool):
        return f" DEFAULT {1 if val else 0}"
    if isinstance(val, int):
        return f" DEFAULT {val}"
    if isinstance(val, str):
        escaped = val.replace("'", "''")
        return f" DEFAULT '{escaped}'"
    return ""


def ensure_sqlite_columns():
    """Add columns that exist on the models but not yet in an older SQLite file."""
    added = 0
    with engine.connect() as conn:
        for table in Base.metadata.sorted_tables:
            result = conn.execute(text(f"PRAGMA table_info({table.name})")).fetchall()
            existing_cols = {r[1] for r in result}
            if not existing_cols:
                continue

            for col in table.columns:
                if col.name in existing_cols:
                    continue

                col_type = _sqlite_col_type(col)
                default = _sqlite_default(col)
                # SQLite can't ADD COLUMN ... NOT NULL without a default
                nullable = "" if col.nullable or not default else " NOT NULL"

                ddl = f"ALTER TABLE {table.name} ADD COLUMN {col.name} {col_type}{nullable}{default}"
                conn.execute(text(ddl))
                logger.info(f"Added column {table.name}.{col.name}")
                added += 1

        conn.commit()

    if added:
        logger.info(f"Schema migration: added {added} column(s)")
