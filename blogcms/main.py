import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import database
from .config import settings
from .errors import register_error_handlers
from .routers import auth, blog_settings, comments, media, posts, taxonomy, users
from .seed import seed_admin
from .storage import storage

logger = logging.getLogger(__name__)


def configure_logging(level: str = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s", settings.APP_NAME)

    database.wait_for_db()
    database.init_db()
    storage.ensure_root()

    # no manual seeding step: the admin account is created on first boot
    if settings.AUTO_SEED:
        db = database.SessionLocal()
        try:
            seed_admin(db)
        finally:
            db.close()

    yield
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(title="Blog CMS", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(posts.router)
app.include_router(blog_settings.router)
app.include_router(taxonomy.categories_router)
app.include_router(taxonomy.tags_router)
app.include_router(comments.router)
app.include_router(media.router)


@app.get("/health")
def health():
    return {
        "status": "OK",
        "service": settings.APP_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
