import logging
import os
from contextlib import contextmanager
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from agenda_backend.core.errors import TransientStorageError


logger = logging.getLogger(__name__)

load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./agenda.db")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False

# Mirrors the partial index declared on the Appointment model, for tables
# created before the index existed.
ACTIVE_SLOT_INDEX_STATEMENT = (
    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
    "ON appointments(professional_id, date) WHERE status <> 'cancelled'"
)


# Columns added after the first release, per table.
MIGRATION_STEPS = {
    'appointments': [
        ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
        ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
    ],
    'professional_patients': [
        ('updated_at', 'ALTER TABLE professional_patients ADD COLUMN updated_at TIMESTAMP'),
    ],
    'agenda_payments': [
        ('expires_at', 'ALTER TABLE agenda_payments ADD COLUMN expires_at TIMESTAMP'),
    ],
}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema(bind=None) -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)
        table_names = set(inspector.get_table_names())

        with bind.begin() as connection:
            for table_name, migration_steps in MIGRATION_STEPS.items():
                if table_name not in table_names:
                    continue
                existing_columns = {column['name'] for column in inspector.get_columns(table_name)}
                for column_name, statement in migration_steps:
                    if column_name not in existing_columns:
                        connection.execute(text(statement))

            if 'appointments' in table_names:
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_appointments_professional_date ON appointments(professional_id, date)')
                )
                connection.execute(text(ACTIVE_SLOT_INDEX_STATEMENT))

        _appointment_schema_checked = True


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise TransientStorageError() from exc


@contextmanager
def storage_errors(db):
    """Roll back and surface any database failure as a retryable error."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Database operation failed.')
        raise TransientStorageError() from exc
