from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from config import ALLOWED_HOSTS, ALLOWED_ORIGINS, LOG_LEVEL, SCHEDULER_ENABLED
from database import engine, init_db
from dependencies import limiter, notifier
from errors import TaskTrackerError
from reminders import APSchedulerReminders

# Routers
from routers.auth import router as auth_router
from routers.tasks import router as tasks_router
from routers.categories import router as categories_router
from routers.channels import router as channels_router

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=LOG_LEVEL
)
logger = logging.getLogger(__name__)

init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    reminders = None
    if SCHEDULER_ENABLED:
        reminders = APSchedulerReminders(engine)
        reminders.start()
        notifier.reminders = reminders
    else:
        logger.warning("Reminder scheduler disabled (SCHEDULER_ENABLED=0), due-date reminders are not queued")
    yield
    if reminders is not None:
        reminders.shutdown()
        notifier.reminders = None


app = FastAPI(title="Task Tracker API", version="1.0.0", lifespan=lifespan)

# Rate Limiter Setup (Globally available via app.state.limiter)
app.state.limiter = limiter


# Custom Rate Limit Handler
def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    limit_info = getattr(exc, "detail", None) or "rate"
    return JSONResponse(
        status_code=429,
        content={"detail": f"Too many requests. Limit exceeded ({limit_info}). Please wait a moment."},
    )
app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)


# Domain errors (403 / 404 / 422 / 500) carry their own status code
def task_tracker_error_handler(request: Request, exc: TaskTrackerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
app.add_exception_handler(TaskTrackerError, task_tracker_error_handler)


# Custom Middleware for Security Headers
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline';"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        return response

app.add_middleware(SecurityHeadersMiddleware)

# Middleware
app.add_middleware(
    CORSMiddleware,
    # Allow explicit origins only (Strict CORS)
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    TrustedHostMiddleware,
    # Strict Host Header Validation
    allowed_hosts=ALLOWED_HOSTS
)

# Include Routers
app.include_router(auth_router)
app.include_router(tasks_router)
app.include_router(categories_router)
app.include_router(channels_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
