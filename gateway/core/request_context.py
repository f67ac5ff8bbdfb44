from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from gateway.core.exceptions import AccessDenied
from gateway.core.messages import ErrorMessage
from gateway.utils.response import ApiResponse, ErrorDetail
from gateway.core.errors import ErrorCode

from typing import Optional
from pydantic import BaseModel
from enum import Enum

# reachable without the upstream gateway's auth headers
PUBLIC_PATH_SUFFIXES = (
    "/health",
    "/health/",
    "/payments/webhooks/verify",
    "/payments/webhooks/ingest",
    "/openapi.json",
    "/docs",
    "/redoc",
)


class AuthStatus(str, Enum):
    AUTHENTICATED = "AUTHENTICATED"
    ANONYMOUS = "ANONYMOUS"


class MerchantContext(BaseModel):
    auth_status: AuthStatus
    merchant_id: Optional[str] = None
    session_id: Optional[str] = None


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=ApiResponse(
            success=False,
            statusCode=401,
            message=ErrorMessage.AUTH_CONTEXT_MISSING,
            data=None,
            errors=[
                ErrorDetail(
                    code=ErrorCode.ACCESS_TOKEN_REQUIRED,
                    message=detail,
                )
            ],
        ).model_dump(),
    )


class GatewayAuthContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path.endswith(PUBLIC_PATH_SUFFIXES):
            return await call_next(request)

        auth_status = request.headers.get("AuthStatus")
        merchant_id = request.headers.get("MerchantId")
        session_id = request.headers.get("X-Session-Id")

        # Enforce gateway presence
        if not auth_status:
            return _unauthorized("Request must pass through gateway")

        if auth_status not in AuthStatus.__members__:
            return _unauthorized("Invalid AuthStatus header")

        request.state.merchant_context = MerchantContext(
            auth_status=AuthStatus[auth_status],
            merchant_id=merchant_id,
            session_id=session_id,
        )

        return await call_next(request)

def _get_merchant_context(request: Request) -> MerchantContext:
    ctx = getattr(request.state, "merchant_context", None)

    if not ctx:
        raise AccessDenied(ErrorMessage.AUTH_CONTEXT_MISSING)

    return ctx


def require_merchant(request: Request) -> str:
    ctx = _get_merchant_context(request)

    if ctx.auth_status != AuthStatus.AUTHENTICATED:
        raise AccessDenied(ErrorMessage.MERCHANT_NOT_AUTHENTICATED)

    if not ctx.merchant_id:
        raise AccessDenied(ErrorMessage.MERCHANT_ID_MISSING)

    return ctx.merchant_id


def get_webhook_signature(request: Request) -> Optional[str]:
    signature = request.headers.get("X-Webhook-Signature")
    if not signature:
        return None

    signature = signature.strip()
    return signature or None
