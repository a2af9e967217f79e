"""Request ID tracking middleware"""

import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to request state and the response headers.

    An incoming ``X-Request-ID`` from a proxy is kept so logs correlate
    across hops; otherwise a fresh UUID is generated.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        response: Response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
