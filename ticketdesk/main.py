from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticketdesk.core.config import settings
from ticketdesk.core.database import Base, SessionLocal, engine

# Import models so SQLAlchemy registers tables for create_all().
import ticketdesk.models.category_filter  # noqa: F401
import ticketdesk.models.system_setting  # noqa: F401
import ticketdesk.models.ticket  # noqa: F401
import ticketdesk.models.ticket_log  # noqa: F401
import ticketdesk.models.user  # noqa: F401

# Routes
from ticketdesk.api.routes import agents, auth, distribution, reports, tickets
from ticketdesk.models.user import User
from ticketdesk.services.auth_service import hash_password

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def bootstrap_admin() -> None:
    """Create (or reset) the admin account named in settings, if any."""
    if not (settings.ADMIN_BOOTSTRAP_USERNAME and settings.ADMIN_BOOTSTRAP_PASSWORD):
        return
    db = SessionLocal()
    try:
        admin = db.query(User).filter(User.username == settings.ADMIN_BOOTSTRAP_USERNAME).first()
        password_hash = hash_password(settings.ADMIN_BOOTSTRAP_PASSWORD)
        if not admin:
            db.add(User(username=settings.ADMIN_BOOTSTRAP_USERNAME, password_hash=password_hash, is_admin=True))
            db.commit()
            logger.info("Bootstrapped admin user '%s'", settings.ADMIN_BOOTSTRAP_USERNAME)
        else:
            admin.password_hash = password_hash
            admin.is_admin = True
            db.commit()
            logger.info("Updated admin user '%s' from bootstrap settings", settings.ADMIN_BOOTSTRAP_USERNAME)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up: initializing database...")
    Base.metadata.create_all(bind=engine)
    bootstrap_admin()
    logger.info("Database initialized successfully.")
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Allow frontend access (tighten allow_origins in production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix=f"{settings.API_V1_STR}/auth", tags=["Auth"])
app.include_router(agents.router, prefix=f"{settings.API_V1_STR}/agents", tags=["Agents"])
app.include_router(distribution.router, prefix=f"{settings.API_V1_STR}/distribution", tags=["Distribution"])
app.include_router(tickets.router, prefix=f"{settings.API_V1_STR}/tickets", tags=["Tickets"])
app.include_router(reports.router, prefix=f"{settings.API_V1_STR}/reports", tags=["Reports"])


@app.get("/")
def read_root():
    return {"status": "success", "message": f"Welcome to {settings.PROJECT_NAME} API"}
