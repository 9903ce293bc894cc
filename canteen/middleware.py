from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import logging
import uuid

logger = logging.getLogger("canteen.http")

class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        logger.debug("%s %s [%s]", request.method, request.url.path, req_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = req_id
        return response
