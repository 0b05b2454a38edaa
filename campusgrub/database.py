# campusgrub/database.py
from sqlmodel import SQLModel, create_engine, Session

from campusgrub.core.config import get_settings

settings = get_settings()

# ---------------------------------------------------------
# Supabase Postgres connection (via pooler)
#
# - sslmode=require   : enforce SSL when running in the cloud
# - pool_size=1       : keep only 1 connection to the Supabase pooler
# - max_overflow=0    : do not open extra connections beyond the pool
# - pool_pre_ping=True: validate connections before using them
#
# Supabase Session mode limits the number of clients, so a backend process
# must not open more than one pooled connection.
#
# Local development and the test-suite may point DATABASE_URL at SQLite;
# none of the Postgres pooler options apply there.
# ---------------------------------------------------------

db_url = settings.DATABASE_URL
is_sqlite = db_url.startswith("sqlite")

if is_sqlite:
    engine = create_engine(
        db_url,
        echo=False,
        connect_args={"check_same_thread": False},
    )
else:
    # Append sslmode=require if it is not already present
    if "sslmode=" not in db_url:
        if "?" in db_url:
            db_url = db_url + "&sslmode=require"
        else:
            db_url = db_url + "?sslmode=require"

    engine = create_engine(
        db_url,
        echo=False,        # set to True if you want to debug SQL queries
        pool_pre_ping=True,
        pool_size=1,
        max_overflow=0,
    )


def create_db_and_tables() -> None:
    """
    Create `orders` and `notifications` if missing (app startup).
    """
    SQLModel.metadata.create_all(engine)


def get_session():
    """
    Request-scoped Session for the HTTP routers (`Depends(get_session)`).
    Services decide when to commit.
    """
    with Session(engine) as session:
        yield session


def session_factory() -> Session:
    """
    Open a standalone Session outside of a request.

    Used by realtime view controllers and the stale-order reaper, which run
    outside FastAPI's dependency injection. Caller must close it.
    """
    return Session(engine)
