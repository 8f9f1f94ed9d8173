import os
from contextlib import asynccontextmanager

import sentry_sdk
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.broker import build_broker
from app.config import load_settings
from app.database import engine, Base
from app.errors import SplitError
from app.logging_config import setup_logging
from app.middleware import RequestLoggingMiddleware
from app.orchestrator import build_split_session
from app.ratelimit import limiter
from app.routes import receipts

load_dotenv()

# Sentry
sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        traces_sample_rate=0.1,
        send_default_pii=False,
    )

settings = load_settings()
logger = setup_logging(settings.log_level)

# One broker per process, shared by every request
broker = build_broker(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await app.state.split_session.aclose()
    await broker.aclose()


app = FastAPI(title="Receipt Split API", version="0.1.0", lifespan=lifespan)
app.state.settings = settings
app.state.split_session = build_split_session(settings, broker)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(SplitError)
async def split_error_handler(request: Request, exc: SplitError):
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"Request failed: {exc.message}",
        extra={"extra_data": {"kind": exc.kind, "path": request.url.path}},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        problems.append(f"{field}: {error['msg']}" if field else error["msg"])
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "; ".join(problems), "kind": "invalid_input"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Server error", "kind": "internal_error"},
    )


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Request-ID"],
)
app.add_middleware(RequestLoggingMiddleware)

# Create tables
Base.metadata.create_all(bind=engine)

# Routes
app.include_router(receipts.router, prefix="/api")


@app.get("/")
def root():
    return {
        "name": app.title,
        "version": app.version,
        "documentation": app.docs_url,
        "endpoints": {"reciepts": "/api/reciepts"},
    }


@app.get("/health")
def health():
    return {"status": "ok"}


logger.info(
    "Receipt Split API configured",
    extra={"extra_data": {
        "provider": settings.receipt_provider,
        "broker": type(broker).__name__,
        "reconcile_policy": settings.reconcile_policy,
    }},
)
