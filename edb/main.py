import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from edb.audit.api import router as audit_router
from edb.auth.api import router as auth_router
from edb.coaching.api import router as coaching_router
from edb.cohorts.api import router as cohorts_router
from edb.config import settings
from edb.dashboard.api import router as dashboard_router
from edb.exceptions import AppError
from edb.notifications.api import router as notifications_router
from edb.notifications.queue import notification_queue
from edb.payments.api import router as payments_router
from edb.reports.api import router as reports_router
from edb.scheduler import scheduler
from edb.subscriptions.api import router as subscriptions_router, plans_router
from edb.users.api import router as users_router
from edb.utils.dates import utcnow
from edb.utils.limiter import limiter

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.NOTIFICATION_WORKER_ENABLED:
        notification_queue.start()
    if settings.SCHEDULER_ENABLED:
        await scheduler.start()
    logger.info(f"🚀 {settings.APP_NAME} démarrée ({settings.APP_ENV})")
    yield
    await scheduler.stop()
    await notification_queue.stop()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Création dossier statique uploads
upload_dir = Path(settings.UPLOAD_PATH)
upload_dir.mkdir(parents=True, exist_ok=True)

# Monture des fichiers statiques
app.mount("/static/upload", StaticFiles(directory=upload_dir), name="uploads")


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "status_code": exc.status_code,
            "path": request.url.path,
            "timestamp": utcnow().isoformat(),
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Erreur non gérée sur {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Erreur interne du serveur"})


# Ajout des routers avec préfixes
app.include_router(auth_router, prefix="/api/auth")
app.include_router(users_router, prefix="/api/users")
app.include_router(cohorts_router, prefix="/api/cohorts")
app.include_router(coaching_router, prefix="/api/coaching")
app.include_router(coaching_router, prefix="/api/coaching-sessions", include_in_schema=False)
app.include_router(plans_router, prefix="/api/subscription-plans")
app.include_router(subscriptions_router, prefix="/api/subscriptions")
app.include_router(payments_router, prefix="/api/payments")
app.include_router(notifications_router, prefix="/api/notifications")
app.include_router(reports_router, prefix="/api/reports")
app.include_router(dashboard_router, prefix="/api/dashboard")
app.include_router(audit_router, prefix="/api/audit-logs")

# Middleware CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": f"Bienvenue sur {settings.APP_NAME}", "status": "ok"}


@app.get("/api/health")
async def health():
    return {"status": "ok", "timestamp": utcnow().isoformat()}
