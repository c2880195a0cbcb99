"""
HTTP plumbing shared by every MoneyVerse endpoint.

- Correlation ids: each request gets an X-Request-ID that is echoed back
  and stamped on every log line written while it is handled.
- API-key auth: optional, for when the sidecar listens beyond localhost.
- Rate limits: a default per client plus tighter limits for the endpoints
  that call CoinGecko or Gemini.
- JSON log lines: request logs carry the correlation id, price scheduler
  logs carry the thread and cycle number, order logs carry the order.
"""
import hashlib
import json
import logging
import secrets
import time
import uuid
from contextvars import ContextVar

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from config.settings import get_settings
from services.price_scheduler import current_cycle

logger = logging.getLogger(__name__)

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

DEFAULT_RATE_LIMIT = "240/minute"
# Each call costs one Gemini request.
CONTENT_RATE_LIMIT = "20/minute"
MARKET_REFRESH_RATE_LIMIT = "30/minute"

PUBLIC_PATHS = frozenset({"/", "/status"})
_DOCS_PREFIXES = ("/docs", "/redoc", "/openapi")

# Order and trade context passed through ``extra=`` on log calls.
_LOG_CONTEXT_FIELDS = ("symbol", "order_id")


# ── API keys ─────────────────────────────────────────────────────────────────

def extract_api_key(request: Request) -> str:
    """Read the key from X-API-Key, falling back to an Authorization Bearer token."""
    key = request.headers.get("x-api-key", "").strip()
    if key:
        return key
    authorization = request.headers.get("authorization", "").strip()
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return ""


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(_DOCS_PREFIXES)


async def api_key_middleware(request: Request, call_next) -> Response:
    """
    Require MONEYVERSE_API_KEY on every non-public endpoint once auth is
    enabled or a key is configured.
    """
    if request.method == "OPTIONS" or is_public_path(request.url.path):
        return await call_next(request)

    settings = get_settings()
    expected = (settings.api_auth_key or "").strip()
    if not settings.api_auth_enabled and not expected:
        return await call_next(request)
    if not expected:
        return JSONResponse(
            status_code=503,
            content={"detail": "API auth is enabled but MONEYVERSE_API_KEY is not configured"},
        )

    provided = extract_api_key(request)
    if not provided or not secrets.compare_digest(provided, expected):
        logger.warning("Rejected %s %s: missing or wrong API key", request.method, request.url.path)
        return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
    return await call_next(request)


# ── Rate limits ──────────────────────────────────────────────────────────────

def client_key(request: Request) -> str:
    """Rate-limit bucket: a digest of the caller's API key when sent, else its address."""
    api_key = extract_api_key(request)
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]
    return get_remote_address(request)


limiter = Limiter(
    key_func=client_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s: %s", request.url.path, exc.detail)
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Too many requests to {request.url.path} ({exc.detail})",
            "retry_after": str(getattr(exc, "retry_after", 60)),
        },
    )


# ── Correlation ids ──────────────────────────────────────────────────────────

async def correlation_id_middleware(request: Request, call_next) -> Response:
    rid = request.headers.get("x-request-id", "").strip()[:64] or uuid.uuid4().hex[:16]
    token = request_id_ctx.set(rid)
    started = time.monotonic()
    try:
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s crashed after %.1fms",
                request.method, request.url.path, (time.monotonic() - started) * 1000,
            )
            raise
        response.headers["X-Request-ID"] = rid
        # The UI polls profile, orders and quotes; keep reads at DEBUG.
        level = logging.DEBUG if request.method in ("GET", "HEAD") else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%.1fms)",
            request.method, request.url.path, response.status_code, (time.monotonic() - started) * 1000,
        )
        return response
    finally:
        request_id_ctx.reset(token)


# ── JSON logs ────────────────────────────────────────────────────────────────

class StructuredFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = request_id_ctx.get("")
        cycle = current_cycle()
        if rid:
            payload["request_id"] = rid
        if cycle:
            payload["price_cycle"] = cycle
        if not rid and record.threadName != "MainThread":
            payload["thread"] = record.threadName
        for name in _LOG_CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """
    Switch every root handler to JSON lines and make sure one writes to the
    console.
    """
    root = logging.getLogger()
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root.setLevel(level)

    formatter = StructuredFormatter()
    has_console = False
    for handler in root.handlers:
        handler.setFormatter(formatter)
        has_console = has_console or type(handler) is logging.StreamHandler
    if not has_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    # httpx logs each quote and Gemini request at INFO.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
