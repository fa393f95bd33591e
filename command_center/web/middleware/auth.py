import secrets
import logging
from typing import Iterable, Optional
from starlette.types import ASGIApp
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

log = logging.getLogger(__name__)


def extract_token(request: Request) -> Optional[str]:
    """Reads the credential from the 'token' query parameter, 'X-Auth-Token' or a bearer header."""
    token = request.query_params.get("token") or request.headers.get("x-auth-token")
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


class TokenAuthMiddleware(BaseHTTPMiddleware):
    """Rejects API requests that do not carry the shared secret. Nothing runs for rejected requests."""

    def __init__(self, app: ASGIApp, token: str, public_paths: Iterable[str] = ()) -> None:
        super().__init__(app)
        if not token:
            raise ValueError("An auth token is required")
        self._token = token
        self._public_paths = set(public_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._public_paths:
            return await call_next(request)

        supplied = extract_token(request)
        if supplied is None or not secrets.compare_digest(supplied.encode("utf-8"), self._token.encode("utf-8")):
            client = request.client.host if request.client else "unknown"
            log.warning(f"Unauthorized request {request.method} {request.url.path} from {client}")
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        return await call_next(request)
