from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backoffice import __version__
from backoffice.core.config import get_settings
from backoffice.core.logger import configure_from_settings
from backoffice.api.routers import approvals, health
from backoffice.services.notifications import close_notifier

settings = get_settings()
configure_from_settings(settings)


def seed_workflows():
    """Load default workflow definitions when a seed file is configured."""
    if not settings.workflow_seed_file:
        return
    from backoffice.db.seed import seed_default_workflows
    from backoffice.db.session import SessionLocal

    db = SessionLocal()
    try:
        seed_default_workflows(db, settings.workflow_seed_file)
        db.commit()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    seed_workflows()
    yield
    close_notifier()


app = FastAPI(
    title=settings.app_name,
    description="Approval workflows for proposals, invoices, contracts and deliverables",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(approvals.router, prefix="/api")


@app.get("/")
def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
