from contextlib import asynccontextmanager
import logging
import uuid
from typing import Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from supportdesk.core.config import settings
from supportdesk.core.database import Base, SessionLocal, engine
from supportdesk.core.exceptions import AppException
from supportdesk.core.logging import request_id_var, setup_logging

# Import models so SQLAlchemy registers tables for create_all().
import supportdesk.models.user  # noqa: F401
import supportdesk.models.ticket  # noqa: F401
import supportdesk.models.comment  # noqa: F401
import supportdesk.models.activity  # noqa: F401
import supportdesk.models.agent_session  # noqa: F401
import supportdesk.models.chat_session  # noqa: F401
import supportdesk.models.chat_message  # noqa: F401

# Routes
from supportdesk.api.routes import activities, auth, chat, comments, sessions, tickets
from supportdesk.services.auth_service import bootstrap_admin

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s v%s (%s)", settings.PROJECT_NAME, settings.VERSION, settings.ENVIRONMENT)
    Base.metadata.create_all(bind=engine)

    # Optional admin bootstrap for first-time setup (or password reset).
    if settings.ADMIN_BOOTSTRAP_EMAIL and settings.ADMIN_BOOTSTRAP_PASSWORD:
        db = SessionLocal()
        try:
            bootstrap_admin(db, settings.ADMIN_BOOTSTRAP_EMAIL, settings.ADMIN_BOOTSTRAP_PASSWORD)
            logger.info("Bootstrapped admin user '%s'", settings.ADMIN_BOOTSTRAP_EMAIL)
        finally:
            db.close()

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


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        # loc is usually ('body', 'field_name')
        field = error["loc"][-1] if len(error["loc"]) > 0 else "unknown"
        errors.append({"field": str(field), "msg": error["msg"]})

    logger.debug("validation error on %s: %s", request.url.path, errors)
    return JSONResponse(status_code=400, content={"success": False, "errors": errors})


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    else:
        logger.debug("%s on %s: %s", exc.error_code, request.url.path, exc.message)

    if isinstance(exc.details, list) and exc.details:
        errors = [{**item, "code": exc.error_code} for item in exc.details]
    else:
        errors = [{"msg": exc.message, "code": exc.error_code}]
    return JSONResponse(status_code=exc.status_code, content={"success": False, "errors": errors})


@app.exception_handler(StarletteHTTPException)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "errors": [{"msg": exc.detail if isinstance(exc.detail, str) else "Request failed"}],
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"success": False, "errors": [{"msg": "An unexpected server error occurred."}]},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled server error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"success": False, "errors": [{"msg": "An unexpected server error occurred."}]},
    )


app.include_router(auth.router, prefix=f"{settings.API_V1_STR}/auth", tags=["Auth"])
app.include_router(tickets.router, prefix=f"{settings.API_V1_STR}/tickets", tags=["Tickets"])
app.include_router(comments.router, prefix=f"{settings.API_V1_STR}/comments", tags=["Comments"])
app.include_router(sessions.router, prefix=f"{settings.API_V1_STR}/sessions", tags=["Agent Sessions"])
app.include_router(chat.router, prefix=f"{settings.API_V1_STR}/chat", tags=["Chat"])
app.include_router(activities.router, prefix=f"{settings.API_V1_STR}/activities", tags=["Activity Log"])


@app.get("/")
def read_root():
    return {"status": "success", "message": f"Welcome to {settings.PROJECT_NAME} API"}


@app.get("/health")
def health():
    return {"status": "ok", "version": settings.VERSION}
