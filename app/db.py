from sqlmodel import create_engine, SQLModel

from app.core.config import settings
from app.core.logging_config import get_logger

logger = get_logger(__name__)

DATABASE_URL = settings.DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    # SQLite connections are shared with FastAPI's worker threads
    engine = create_engine(DATABASE_URL, echo=False, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        DATABASE_URL,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use (hosted Postgres drops idle ones)
        pool_recycle=300,
        pool_timeout=30,
        connect_args={"connect_timeout": 10},
    )


def create_db_and_tables():
    # Import models so they register with SQLModel.metadata
    import app.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("database_ready", url=engine.url.render_as_string(hide_password=True))
