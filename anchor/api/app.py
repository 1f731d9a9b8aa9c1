# anchor/api/app.py
"""
HTTP JSON surface for registration and verification.

Every failure body has the same shape: {ok: false, statusCode: "UNKNOWN", error, detail?}.
Validation → 400, configuration → 500, network → 503, rate limited → 429.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from anchor import __version__
from anchor.config import AnchorConfig
from anchor.core.errors import (
    ConfigurationError,
    TransientNetworkError,
    ValidationError,
    sanitize_error,
)
from anchor.core.types import StatusCode, VerificationResult
from anchor.service import AnchorService
from anchor.storage import RateDecision, RateLimiter, create_rate_limiter

logger = logging.getLogger("anchor.api")


class RegisterRequest(BaseModel):
    fingerprint: Optional[str] = None
    hash: Optional[str] = None      # legacy field name


class VerifyRequest(BaseModel):
    fingerprint: Optional[str] = None
    hash: Optional[str] = None
    submissionRef: Optional[str] = None


class RateLimitedError(Exception):
    def __init__(self, decision: RateDecision):
        super().__init__("Too many requests")
        self.decision = decision


def failure(status: int, error: str, detail: Optional[str] = None, headers: Optional[dict] = None) -> JSONResponse:
    body = {"ok": False, "statusCode": StatusCode.UNKNOWN.value, "error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status, content=body, headers=headers)


def result_response(result: VerificationResult) -> JSONResponse:
    status = 200 if result.ok else 503
    return JSONResponse(status_code=status, content=result.to_dict())


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else "unknown"


def rate_limited(request: Request) -> None:
    limiter: RateLimiter = request.app.state.rate_limiter
    decision = limiter.hit(client_key(request))
    if not decision.allowed:
        raise RateLimitedError(decision)


def create_app(
    config: Optional[AnchorConfig] = None,
    service: Optional[AnchorService] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    config = config or AnchorConfig.from_env()
    service = service or AnchorService(config)
    if rate_limiter is None:
        rate_limiter = create_rate_limiter(
            config.rate_limit_uri, config.rate_limit_max, config.rate_limit_window_s
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        rate_limiter.close()

    app = FastAPI(title="Fingerprint Anchor", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.state.rate_limiter = rate_limiter
    secrets = config.secrets

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins) or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )

    @app.middleware("http")
    async def no_store(request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

    @app.exception_handler(RequestValidationError)
    async def bad_body(request: Request, exc: RequestValidationError):
        return failure(400, "Invalid JSON body")

    @app.exception_handler(ValidationError)
    async def bad_input(request: Request, exc: ValidationError):
        return failure(400, sanitize_error(exc, secrets))

    @app.exception_handler(ConfigurationError)
    async def misconfigured(request: Request, exc: ConfigurationError):
        logger.error("configuration error: %s", sanitize_error(exc, secrets))
        return failure(500, "Server misconfiguration", sanitize_error(exc, secrets))

    @app.exception_handler(TransientNetworkError)
    async def unavailable(request: Request, exc: TransientNetworkError):
        return failure(503, "Ledger temporarily unavailable", sanitize_error(exc, secrets))

    @app.exception_handler(RateLimitedError)
    async def too_many(request: Request, exc: RateLimitedError):
        retry_after = exc.decision.retry_after(time.time())
        return failure(429, "Too many requests. Please try again soon.", headers={"Retry-After": str(retry_after)})

    @app.get("/api/health")
    def health():
        return {"ok": True, "version": __version__}

    @app.post("/api/register", dependencies=[Depends(rate_limited)])
    def register(body: RegisterRequest):
        fingerprint = body.fingerprint if body.fingerprint is not None else body.hash
        return result_response(service.register(fingerprint or ""))

    @app.post("/api/verify", dependencies=[Depends(rate_limited)])
    def verify_post(body: VerifyRequest):
        fingerprint = body.fingerprint if body.fingerprint is not None else body.hash
        return result_response(service.verify(fingerprint or "", body.submissionRef))

    @app.get("/api/verify", dependencies=[Depends(rate_limited)])
    def verify_get(
        fingerprint: Optional[str] = None,
        hash: Optional[str] = None,
        submission_ref: Optional[str] = Query(None, alias="submissionRef"),
        tx: Optional[str] = None,
    ):
        fp = fingerprint or hash
        if not fp:
            return {
                "ok": True,
                "message": "Use POST /api/verify with {fingerprint, submissionRef?} "
                           "or GET /api/verify?fingerprint=0x...",
                "chainId": config.chain_id,
            }
        return result_response(service.verify(fp, submission_ref or tx))

    @app.get("/api/tx")
    def tx_status(tx: str = ""):
        status = service.lookup_submission(tx)
        return {"ok": True, **status.to_dict()}

    @app.get("/api/diag")
    def diag():
        return service.diagnose()

    return app
