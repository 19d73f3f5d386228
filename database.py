from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from config import DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


@event.listens_for(engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    if engine.dialect.name != "sqlite":
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db():
    # Import the model modules so every table is registered on Base
    import models  # noqa: F401
    import task_models  # noqa: F401

    Base.metadata.create_all(bind=engine)


# Largest value a signed 64-bit INTEGER column can hold
MAX_ID = 2**63 - 1


def fits_id_column(value) -> bool:
    """False for ids the driver cannot bind, such rows can never exist."""
    return isinstance(value, int) and -MAX_ID - 1 <= value <= MAX_ID
