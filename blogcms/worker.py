import logging
import time

from sqlalchemy.exc import SQLAlchemyError

from . import lifecycle
from .cache import clear_post_cache
from .config import settings
from .database import SessionLocal

logger = logging.getLogger(__name__)


def publish_scheduled_posts() -> int:
    """Publish due scheduled posts in a fresh session; returns how many went live."""
    db = SessionLocal()
    try:
        posts = lifecycle.publish_due_posts(db)
        if posts:
            # so the public listings and single-post reads pick up the new posts immediately
            refs = [p.id for p in posts] + [p.slug for p in posts]
            clear_post_cache(*refs)
        return len(posts)
    except SQLAlchemyError:
        logger.exception("Worker failed to publish scheduled posts")
        db.rollback()
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    interval = settings.WORKER_INTERVAL_SECONDS
    logger.info("Worker started: monitoring scheduled posts every %s seconds", interval)
    while True:
        publish_scheduled_posts()
        time.sleep(interval)
