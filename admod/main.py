"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from admod.api.errors import register_error_handlers
from admod.api.routes import router
from admod.config import get_settings
from admod.database import Base, SessionLocal, engine
# Import models to register them with SQLAlchemy Base
from admod.models.audit import AuditEntry  # noqa: F401
from admod.models.domain import Ad, AdminPermission, OwnerMessage, Permission, User  # noqa: F401
from admod.services.permission_store import PermissionStore

settings = get_settings()


def _resolve_log_level(value: str) -> int:
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else logging.INFO


if not logging.getLogger().handlers:
    logging.basicConfig(
        level=_resolve_log_level(settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
logger = logging.getLogger("admod")


def init_db() -> None:
    """Create tables and install the default permission catalog."""
    Base.metadata.create_all(bind=engine)
    if not settings.seed_permissions:
        return
    db = SessionLocal()
    try:
        seeded = PermissionStore(db).seed_catalog()
        logger.info("permission catalog ready (%d permissions)", len(seeded))
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    description="Ad moderation workflow with role and permission based access control.",
    version="0.1.0",
    lifespan=lifespan,
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include API routes
app.include_router(router, prefix="/api", tags=["Moderation"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.app_name}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
