"""
FastAPI application for ephemeral text and file sharing.
Links expire by time, view count or single use, optionally password-protected.
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.datastructures import UploadFile
from starlette.middleware.base import BaseHTTPMiddleware

import config
import database
from cleanup import cleanup_loop
from errors import AuthorizationError, PasteError, ValidationError
from file_storage import read_upload
from models import (
    CreatePasteInput,
    Credentials,
    DeleteRequest,
    TokenResponse,
    UploadRequest,
    UploadResponse,
    UserOut,
    to_iso,
    utcnow,
)
from paste_manager import paste_manager
from security import create_access_token, get_caller_identity, hash_password, verify_password
from utils.code_generator import generate_id

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Rate limiter setup
limiter = Limiter(key_func=get_remote_address, enabled=config.RATE_LIMIT_ENABLED)


# ============ LIFESPAN CONTEXT ============
@asynccontextmanager
async def lifespan(app):
    """Initialize database and start the expiry reaper on startup."""
    await database.init_db()
    reaper = asyncio.create_task(cleanup_loop())
    logger.info("LinkVault started successfully")
    logger.info(f"Upload directory: {config.UPLOAD_DIR}")
    logger.info(f"Default expiry: {config.DEFAULT_EXPIRY_MINUTES} minutes")
    logger.info(f"Max file size: {config.MAX_FILE_SIZE / 1024 / 1024:.2f}MB")
    logger.info(f"Storage provider: {'s3' if config.REMOTE_STORAGE_ENABLED else 'local'}")
    yield
    reaper.cancel()
    with suppress(asyncio.CancelledError):
        await reaper
    await paste_manager.resolver.close()
    logger.info("LinkVault shutting down")


app = FastAPI(title="LinkVault", docs_url=None, redoc_url=None, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

ALLOWED_ORIGINS = ([config.FRONTEND_URL.rstrip("/")] if config.FRONTEND_URL else []) + (
    ["http://localhost:5173", "http://localhost:3000"] if config.DEBUG else []
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON and file bytes only; nothing here should ever execute in a browser
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        if not config.DEBUG:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=config.ALLOWED_HOSTS)


# ============ ERROR MAPPING ============

@app.exception_handler(PasteError)
async def paste_error_handler(request: Request, exc: PasteError):
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and parameters surface as a plain 400, without pydantic internals."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    if first.get("type") == "json_invalid":
        error = ValidationError("Invalid JSON body")
    else:
        fields = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
        error = ValidationError(f"Invalid value for {fields[-1]}" if fields else "Invalid request")
    return JSONResponse(error.to_payload(), status_code=error.status_code)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Server error on {request.method} {request.url.path}")
    payload = {"error": "Internal server error"}
    if config.DEBUG:
        payload["message"] = str(exc)
    return JSONResponse(payload, status_code=500)


# ============ PASTES ============

async def _read_create_input(request: Request) -> CreatePasteInput:
    """Build creation input from a JSON body or a multipart/urlencoded form."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
            payload = UploadRequest.model_validate(body)
        except (ValueError, PydanticValidationError):
            raise ValidationError("Invalid JSON body")
        return CreatePasteInput(
            text=payload.text,
            expiry_minutes=payload.expiry_minutes,
            expires_at=payload.expires_at,
            password=payload.password,
            max_views=payload.max_views,
            one_time_view=payload.one_time_view,
        )

    form = await request.form()
    upload = form.get("file")
    uploaded = None
    if isinstance(upload, UploadFile) and upload.filename:
        uploaded = await read_upload(upload)
    text = form.get("text")
    return CreatePasteInput(
        text=text if isinstance(text, str) else None,
        file=uploaded,
        expiry_minutes=form.get("expiryMinutes"),
        expires_at=form.get("expiresAt"),
        password=form.get("password") or None,
        max_views=form.get("maxViews"),
        one_time_view=form.get("oneTimeView"),
    )


@app.get("/health")
async def health():
    return {"status": "OK", "timestamp": to_iso(utcnow())}


@app.post("/upload", status_code=201)
@limiter.limit(config.UPLOAD_RATE_LIMIT)
async def upload_paste(request: Request, caller_id: Optional[str] = Depends(get_caller_identity)):
    """Create a text or file paste and return its share link."""
    data = await _read_create_input(request)
    data.owner_id = caller_id
    created = await paste_manager.create(data, base_url=str(request.base_url))
    body = UploadResponse(
        id=created.id,
        url=created.share_url,
        expires_at=to_iso(created.expires_at),
        type=created.kind,
    )
    return JSONResponse(body.model_dump(by_alias=True, mode="json"), status_code=201)


@app.get("/paste/{paste_id}")
@limiter.limit(config.ACCESS_RATE_LIMIT)
async def get_paste(
    request: Request,
    paste_id: str,
    background_tasks: BackgroundTasks,
    password: Optional[str] = Query(None),
):
    """Read a paste; file pastes return metadata only."""
    view = await paste_manager.get(paste_id, password, background_tasks)
    return JSONResponse(view.model_dump(by_alias=True, exclude_none=True, mode="json"))


@app.get("/download/{paste_id}")
@limiter.limit(config.DOWNLOAD_RATE_LIMIT)
async def download_paste(
    request: Request,
    paste_id: str,
    background_tasks: BackgroundTasks,
    password: Optional[str] = Query(None),
    disposition: str = Query("attachment"),
):
    """Stream the bytes of a file paste."""
    return await paste_manager.download(paste_id, password, disposition, background_tasks)


@app.delete("/paste/{paste_id}")
@limiter.limit(config.DELETE_RATE_LIMIT)
async def delete_paste(
    request: Request,
    paste_id: str,
    body: Optional[DeleteRequest] = None,
    password: Optional[str] = Query(None),
    caller_id: Optional[str] = Depends(get_caller_identity),
):
    supplied = body.password if body and body.password is not None else password
    await paste_manager.delete(paste_id, supplied, caller_id)
    return {"success": True, "message": "Content deleted successfully"}


# ============ AUTH ============

@app.post("/auth/register", status_code=201)
@limiter.limit(config.AUTH_RATE_LIMIT)
async def register(request: Request, credentials: Credentials):
    email = credentials.email.strip().lower()
    if "@" not in email or len(credentials.password) < 6:
        raise ValidationError("Invalid email or password too short (min 6)")
    if await database.get_user_by_email(email):
        return JSONResponse({"error": "User already exists"}, status_code=409)

    user = await database.create_user(generate_id(12), email, hash_password(credentials.password))
    token = create_access_token(user["id"], user["email"])
    body = TokenResponse(token=token, user=UserOut(id=user["id"], email=user["email"]))
    return JSONResponse(body.model_dump(), status_code=201)


@app.post("/auth/login")
@limiter.limit(config.AUTH_RATE_LIMIT)
async def login(request: Request, credentials: Credentials):
    email = credentials.email.strip().lower()
    user = await database.get_user_by_email(email)
    if not user or not verify_password(credentials.password, user["password_hash"]):
        raise AuthorizationError("Invalid credentials", status_code=401)
    token = create_access_token(user["id"], user["email"])
    return TokenResponse(token=token, user=UserOut(id=user["id"], email=user["email"]))


@app.get("/auth/me")
async def me(caller_id: Optional[str] = Depends(get_caller_identity)):
    if caller_id is None:
        raise AuthorizationError("Authentication required", status_code=401)
    user = await database.get_user_by_id(caller_id)
    if not user:
        return JSONResponse({"error": "User not found"}, status_code=404)
    return UserOut(id=user["id"], email=user["email"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
