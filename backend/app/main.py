"""Freelance Ledger backend entrypoint."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api import invoices
from backend.app.api import payments
from backend.app.api import reports
from backend.app.core.exceptions import LedgerError
from backend.app.core.logging import log, setup_logging
from backend.app.core.settings import get_settings
from backend.app.db.base import Base
from backend.app.db.session import engine

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(level=settings.log_level, log_format=settings.log_format)
    Base.metadata.create_all(bind=engine)
    log.info("Starting {} ({})", settings.app_name, settings.environment)
    yield
    log.info("Shutting down {}", settings.app_name)


app = FastAPI(title=settings.app_name, version=settings.api_version, lifespan=lifespan)

origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(invoices.router)
app.include_router(payments.router)
app.include_router(reports.router)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        log.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "details": exc.details})


@app.get("/")
def read_root():
    return {"app": "Freelance Ledger backend", "status": "ok"}


@app.get("/health")
def health_check():
    return {"status": "ok"}

