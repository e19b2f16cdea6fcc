"""
Point d'entree FastAPI / FastAPI entry point.
Service d'association appareil-utilisateur / Device-user association service.
"""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from device_association.api import api_router
from device_association.config import settings
from device_association.database import init_db
from device_association.errors import AssociationError, ErrorKind
from device_association.rate_limit import limiter

logger = logging.getLogger("device_association")

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Type d'echec -> statut HTTP / Failure kind -> HTTP status
STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PRECONDITION: 412,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DATA_INTEGRITY: 500,
    ErrorKind.FAN_OUT: 502,
    ErrorKind.UNAVAILABLE: 503,
}


# ─── Logging ───

class RequestIdFilter(logging.Filter):
    """Attache l'id de requete courant a chaque record / Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(debug: bool) -> None:
    """Texte lisible en dev, JSON en production / Readable text in dev, JSON in production."""
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    if debug:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"))
    else:
        handler.setFormatter(JSONFormatter())
    logging.root.handlers = [handler]
    logging.root.setLevel(logging.INFO)


configure_logging(settings.DEBUG)


# ─── Application ───

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Cycle de vie des associations appareil-utilisateur / Device-user association lifecycle",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AssociationError)
async def association_error_handler(request: Request, exc: AssociationError):
    """Echec type -> reponse JSON / Typed failure -> JSON response."""
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    body = exc.to_dict()
    body["request_id"] = request_id_var.get()
    return JSONResponse(status_code=status_code, content=body)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "user-id", "scope", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


class ResponseHeadersMiddleware(BaseHTTPMiddleware):
    """Id de requete + headers de securite / Request id + security headers.

    Les reponses portent des donnees personnelles : jamais en cache.
    Responses carry personal data: never cached.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response: Response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"
        return response


app.add_middleware(ResponseHeadersMiddleware)

app.include_router(api_router)


@app.get("/api/")
async def api_health():
    return {"app": settings.APP_NAME, "version": settings.APP_VERSION, "status": "running"}
