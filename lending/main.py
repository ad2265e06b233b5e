import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from lending.config import settings
from lending.database import engine, Base
from lending.exceptions import LendingError
from lending.routes import loan, admin_loans, requests, admin_requests, book, settings as settings_routes
from lending.services.email_service import email_service
from lending.services.reminder_service import reminder_scheduler

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")

        response = await call_next(request)
        if response.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager to start/stop the reminder sweep with FastAPI."""
    if settings.reminders_enabled:
        logger.info("Starting loan reminder scheduler...")
        reminder_scheduler.start()

    yield

    if reminder_scheduler.running:
        logger.info("Stopping loan reminder scheduler...")
        reminder_scheduler.shutdown()
    email_service.shutdown(wait=False)


app = FastAPI(
    title="Library Lending API",
    description="Loan lifecycle and book request fulfillment for the library lending platform",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Logging middleware (last, to log everything)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError):
    logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid request", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Server error", "error": str(exc)},
    )


# Include routers
app.include_router(loan.router)
app.include_router(admin_loans.router)
app.include_router(requests.router)
app.include_router(admin_requests.router)
app.include_router(book.router)
app.include_router(book.admin_router)
app.include_router(settings_routes.router)

@app.get("/")
async def root():
    return {"message": "Library Lending API", "version": "1.0.0"}

@app.get("/api/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "lending.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
