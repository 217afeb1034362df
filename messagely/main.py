import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response, Request, Depends, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from messagely.config import Settings, get_settings, settings
from messagely.security import dummy_hash
from messagely.storage import init_db, check_db_health, get_db
from messagely.logging_utils import setup_logging, RequestLoggingMiddleware, log_auth_data
from messagely.metrics import (
    record_auth_outcome,
    record_message_event,
    get_metrics,
    get_metrics_content_type,
)
from messagely.errors import ConflictError, MessagelyError, StorageError, ValidationError
from messagely.auth import (
    issue_token,
    get_current_user,
    ensure_correct_user,
    ensure_message_party,
    ensure_message_recipient,
)
from messagely import messages as ledger
from messagely import users as directory
from messagely.schemas import (
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    MessageCreateRequest,
    MessageDetailResponse,
    NewMessageResponse,
    ReadReceiptResponse,
    ReceivedMessagesResponse,
    RegisterRequest,
    SentMessagesResponse,
    TokenResponse,
    UserResponse,
    UsersListResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables, warm the stand-in
      password hash used for unknown usernames
    """
    init_db()
    dummy_hash(get_settings().BCRYPT_WORK_FACTOR)
    yield


app = FastAPI(
    title="Messagely API",
    description="Users register, log in and exchange direct messages",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

AUTH_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
}
PROTECTED_ERRORS = {
    401: {"model": ErrorResponse, "description": "Missing/invalid token or not allowed"},
    404: {"model": ErrorResponse, "description": "Not found"},
}


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(MessagelyError)
async def messagely_error_handler(request: Request, exc: MessagelyError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error(f"Storage failure on {request.url.path}: {exc.__cause__!r}", exc_info=exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": "Internal server error"},
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Unhandled database error on {request.url.path}: {exc!r}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed input is a 400 with a single detail string, like every other error."""
    problems = []
    for error in exc.errors():
        loc = list(error.get("loc", ()))
        if loc and loc[0] in ("body", "path", "query", "header"):
            loc = loc[1:]
        location = ".".join(str(part) for part in loc)
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    detail = "; ".join(problems) or "Invalid request."
    logger.info(f"Rejected malformed request on {request.url.path}: {detail}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    schema is applied, otherwise 503 (Service Unavailable).
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Auth Routes
# =============================================================================

@app.post("/register", response_model=TokenResponse, responses=AUTH_ERRORS)
async def register(
    request: Request,
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> TokenResponse:
    """
    Register a user and log them in.

    {username, password, first_name, last_name, phone} => {token}
    """
    # bcrypt is CPU-bound; keep it off the event loop
    try:
        user = await run_in_threadpool(
            directory.register_user, db, payload.model_dump(), app_settings.BCRYPT_WORK_FACTOR
        )
    except ValidationError:
        record_auth_outcome("invalid_input")
        log_auth_data(request, username=payload.username, result="invalid_input")
        raise
    except ConflictError:
        record_auth_outcome("conflict")
        log_auth_data(request, username=payload.username, result="conflict")
        raise

    record_auth_outcome("registered")
    log_auth_data(request, username=user["username"], result="registered")
    return TokenResponse(token=issue_token(user["username"], app_settings))


@app.post("/login", response_model=TokenResponse, responses=AUTH_ERRORS)
async def login(
    request: Request,
    payload: LoginRequest,
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> TokenResponse:
    """
    {username, password} => {token}. Updates last_login_at on success.
    """
    is_valid = await run_in_threadpool(
        directory.authenticate, db, payload.username, payload.password, app_settings.BCRYPT_WORK_FACTOR
    )
    if not is_valid:
        record_auth_outcome("login_failed")
        log_auth_data(request, username=payload.username, result="login_failed")
        raise ValidationError("The username and / or password are invalid.")

    username = payload.username.strip()
    directory.update_login_timestamp(db, username)

    record_auth_outcome("login_ok")
    log_auth_data(request, username=username, result="login_ok")
    return TokenResponse(token=issue_token(username, app_settings))


# =============================================================================
# User Routes
# =============================================================================

@app.get("/users", response_model=UsersListResponse)
async def list_users(db: Session = Depends(get_db)) -> UsersListResponse:
    """=> {users: [{username, first_name, last_name, phone}, ...]}"""
    return UsersListResponse(users=directory.all_users(db))


@app.get("/users/{username}", response_model=UserResponse, responses=PROTECTED_ERRORS)
async def user_detail(username: str, db: Session = Depends(get_db)) -> UserResponse:
    """=> {user: {username, first_name, last_name, phone, joined_at, last_login_at}}"""
    return UserResponse(user=directory.get_user(db, username))


@app.get("/users/{username}/to", response_model=ReceivedMessagesResponse, responses=PROTECTED_ERRORS)
async def messages_to_user(
    username: str,
    current_user: dict = Depends(ensure_correct_user),
    db: Session = Depends(get_db),
) -> ReceivedMessagesResponse:
    """Messages sent to the caller, oldest first."""
    return ReceivedMessagesResponse(messages=directory.messages_to(db, username))


@app.get("/users/{username}/from", response_model=SentMessagesResponse, responses=PROTECTED_ERRORS)
async def messages_from_user(
    username: str,
    current_user: dict = Depends(ensure_correct_user),
    db: Session = Depends(get_db),
) -> SentMessagesResponse:
    """Messages sent by the caller, oldest first."""
    return SentMessagesResponse(messages=directory.messages_from(db, username))


# =============================================================================
# Message Routes
# =============================================================================

@app.post("/messages", response_model=NewMessageResponse, responses=PROTECTED_ERRORS)
async def post_message(
    payload: MessageCreateRequest,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NewMessageResponse:
    """
    {to_username, body} => {message: {id, from_username, to_username, body, sent_at, read_at}}

    The sender is always the logged-in user.
    """
    message = ledger.create_message(
        db,
        from_username=current_user["username"],
        to_username=payload.to_username,
        body=payload.body,
    )
    record_message_event("created")
    return NewMessageResponse(message=message)


@app.get("/messages/{message_id}", response_model=MessageDetailResponse, responses=PROTECTED_ERRORS)
async def message_detail(message: dict = Depends(ensure_message_party)) -> MessageDetailResponse:
    """
    => {message: {id, body, sent_at, read_at, from_user, to_user}}

    Only the sender or the recipient may read it.
    """
    return MessageDetailResponse(message=message)


@app.post("/messages/{message_id}/read", response_model=ReadReceiptResponse, responses=PROTECTED_ERRORS)
async def mark_message_read(
    message: dict = Depends(ensure_message_recipient),
    db: Session = Depends(get_db),
) -> ReadReceiptResponse:
    """=> {message: {id, read_at}}. Only the recipient may mark it read."""
    receipt = ledger.mark_read(db, message["id"])
    record_message_event("read")
    return ReadReceiptResponse(message=receipt)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
