"""
Edge proxy in front of Google Cloud Text-to-Speech.

Keeps the API key on the server, only answers allowed origins and caps each
client IP at a fixed number of syntheses per minute.
"""
from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
import os
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .ratelimit import DEFAULT_THRESHOLD, KVStore, MemoryKV, RateLimiter, client_ip

log = logging.getLogger("shippingforecast.proxy")

SERVICE_NAME = "Infinite Shipping Forecast TTS Proxy"
GOOGLE_TTS_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"
LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0"})

_API_KEY_RE = re.compile(r"AIza[a-zA-Z0-9_-]{35}")
_LONG_PATH_RE = re.compile(r"/[a-z0-9_-]{20,}", re.IGNORECASE)


def sanitize_error_details(message: str) -> str:
    s = _API_KEY_RE.sub("[REDACTED]", message or "")
    return _LONG_PATH_RE.sub("[PATH]", s)


def error_response(error: str, status: int, headers: Optional[Dict[str, str]] = None, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": error, "code": status, **extra}, status_code=status, headers=headers)


def _env_int(key: str, default: int) -> int:
    v = os.environ.get(key)
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        return default


@dataclass(frozen=True)
class ProxySettings:
    api_key: str
    allowed_origins: Tuple[str, ...]
    rate_limit_threshold: int = DEFAULT_THRESHOLD
    upstream_url: str = GOOGLE_TTS_URL
    upstream_timeout: float = 10.0
    host: str = "0.0.0.0"
    port: int = 8787

    @classmethod
    def from_env(cls) -> "ProxySettings":
        return cls(
            api_key=os.environ.get("GOOGLE_TTS_API_KEY", ""),
            allowed_origins=parse_allowed_origins(os.environ.get("ALLOWED_ORIGINS", "")),
            rate_limit_threshold=_env_int("RATE_LIMIT_THRESHOLD", DEFAULT_THRESHOLD) or DEFAULT_THRESHOLD,
            upstream_url=os.environ.get("GOOGLE_TTS_URL") or GOOGLE_TTS_URL,
            host=os.environ.get("PROXY_HOST") or "0.0.0.0",
            port=_env_int("PROXY_PORT", 8787),
        )


def parse_allowed_origins(raw: str) -> Tuple[str, ...]:
    return tuple(o.strip() for o in (raw or "").split(",") if o.strip())


def request_origin(request: Request) -> Optional[str]:
    origin = request.headers.get("origin")
    if origin:
        return origin
    referer = request.headers.get("referer")
    if referer:
        parts = urlsplit(referer)
        if parts.scheme and parts.netloc:
            return f"{parts.scheme}://{parts.netloc}"
        log.warning("Ignoring unparseable Referer header")
    return None


def check_origin(request: Request, allowed: Tuple[str, ...]) -> Tuple[bool, Optional[str], Optional[str]]:
    """Returns (ok, origin, rejection reason)."""
    origin = request_origin(request)
    if origin is None:
        if request.url.hostname in LOCAL_HOSTS:
            return True, None, None
        return False, None, "Missing origin header"
    if not allowed or origin in allowed:
        return True, origin, None
    log.info("Rejected origin: %s", origin)
    return False, origin, "Invalid origin"


def validate_tts_payload(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return "Missing required fields: input, voice, audioConfig"
    inp, voice, audio = body.get("input"), body.get("voice"), body.get("audioConfig")
    if not isinstance(inp, dict) or not isinstance(voice, dict) or not isinstance(audio, dict):
        return "Missing required fields: input, voice, audioConfig"

    ssml = inp.get("ssml")
    if not ssml or not isinstance(ssml, str):
        return "input.ssml must be a non-empty string"
    if "<speak>" not in ssml:
        return "SSML must be wrapped in <speak> tags"
    if not voice.get("languageCode") or not voice.get("name"):
        return "voice must include languageCode and name"
    if not audio.get("audioEncoding") or not audio.get("sampleRateHertz"):
        return "audioConfig must include audioEncoding and sampleRateHertz"
    return None


def create_app(
    settings: ProxySettings,
    kv: Optional[KVStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    owns_client = client is None
    upstream = client or httpx.AsyncClient(
        timeout=settings.upstream_timeout,
        headers={"Content-Type": "application/json"},
    )
    limiter = RateLimiter(kv or MemoryKV(clock=clock), settings.rate_limit_threshold, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.api_key:
            log.warning("GOOGLE_TTS_API_KEY is not set; /synthesize will fail")
        if not settings.allowed_origins:
            log.warning("ALLOWED_ORIGINS is empty; every origin is accepted")
        yield
        if owns_client:
            await upstream.aclose()

    app = FastAPI(title=SERVICE_NAME, docs_url=None, redoc_url=None, openapi_url=None, lifespan=lifespan)
    app.state.limiter = limiter
    app.state.settings = settings

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        log.info(
            json.dumps(
                {
                    "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
                    "ip": request.headers.get("cf-connecting-ip") or "unknown",
                    "method": request.method,
                    "pathname": request.url.path,
                    "statusCode": response.status_code,
                    "latencyMs": int((time.monotonic() - start) * 1000),
                    "origin": request.headers.get("origin") or "none",
                }
            )
        )
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return error_response(
                "Not Found", 404, message="Unknown endpoint. POST to /synthesize for TTS synthesis."
            )
        return error_response(str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        log.error("Unhandled proxy error: %s", sanitize_error_details(str(exc)))
        return error_response("Internal Server Error", 500, message="An unexpected error occurred")

    @app.get("/")
    async def health():
        return JSONResponse(
            {
                "service": SERVICE_NAME,
                "status": "operational",
                "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            },
            headers={"Access-Control-Allow-Origin": "*"},
        )

    @app.options("/synthesize")
    async def preflight(request: Request):
        ok, origin, reason = check_origin(request, settings.allowed_origins)
        if not ok:
            return error_response(f"Forbidden: {reason}", 403)
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin or "*",
                "Access-Control-Allow-Methods": "POST, OPTIONS",
                "Access-Control-Allow-Headers": "Content-Type",
                "Access-Control-Max-Age": "86400",
            },
        )

    @app.post("/synthesize")
    async def synthesize(request: Request):
        ok, origin, reason = check_origin(request, settings.allowed_origins)
        if not ok:
            return error_response(f"Forbidden: {reason}", 403)

        decision = await limiter.check(client_ip(request.headers))
        if not decision.allowed:
            return error_response(
                "Rate limit exceeded",
                429,
                headers={"Retry-After": str(decision.retry_after)},
                retryAfter=decision.retry_after,
            )

        if not settings.api_key:
            log.error("TTS Proxy: API key not configured")
            return error_response("Internal configuration error", 500)

        try:
            body = await request.json()
        except ValueError:
            return error_response("Bad request: Invalid JSON payload", 400)

        problem = validate_tts_payload(body)
        if problem:
            return error_response(f"Bad request: {problem}", 400)

        try:
            r = await upstream.post(settings.upstream_url, params={"key": settings.api_key}, json=body)
        except httpx.HTTPError as e:
            log.error("Google TTS API unreachable: %s", type(e).__name__)
            return error_response("Internal Server Error", 500, message="An unexpected error occurred")

        if r.status_code != 200:
            try:
                data = r.json()
            except ValueError:
                data = {}
            err = data.get("error") if isinstance(data, dict) else None
            message = err.get("message") if isinstance(err, dict) else err
            message = str(message or "TTS synthesis failed")
            log.error("Google TTS API: Status %d: %s", r.status_code, sanitize_error_details(message))
            return error_response("TTS synthesis failed", 500, details=sanitize_error_details(message))

        return JSONResponse(r.json(), headers={"Access-Control-Allow-Origin": origin or "*"})

    return app


def main(argv: list[str] | None = None) -> int:
    from .main import _setup_logging

    _setup_logging()
    ap = argparse.ArgumentParser(description="Google TTS proxy for the shipping forecast")
    ap.add_argument("--host", default=None)
    ap.add_argument("--port", type=int, default=None)
    args = ap.parse_args(argv)

    settings = ProxySettings.from_env()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level="info",
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
