import logging
import time

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import OperationalError

from .config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def wait_for_db(retries: int = None, delay: float = None) -> None:
    # Retry logic to wait for the Postgres container to be fully ready
    retries = settings.DB_CONNECT_RETRIES if retries is None else retries
    delay = settings.DB_RETRY_DELAY_SECONDS if delay is None else delay
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection established")
            return
        except OperationalError:
            retries -= 1
            if retries <= 0:
                raise
            logger.warning("Database not ready yet... retrying in %s seconds (%d retries left)", delay, retries)
            time.sleep(delay)


def init_db() -> None:
    from .models import Base
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
