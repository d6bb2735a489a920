import time
import uuid

from fastapi import Request


async def request_id_middleware(request: Request, call_next):
    #1. Generate a unique request ID and note when we started
    request_id = uuid.uuid4().hex

    #2. Attach both to the request state (lives for this request only)
    request.state.request_id = request_id
    request.state.started_at = time.perf_counter()

    #3. Let the request continue through the rest of the app
    response = await call_next(request)

    #4. Add the request ID to the response headers
    response.headers['X-Request-ID'] = request_id

    return response


def elapsed_ms(request: Request) -> int:
    """Milliseconds since the middleware saw this request (0 if it never did)."""
    started_at = getattr(request.state, "started_at", None)
    if started_at is None:
        return 0
    return int((time.perf_counter() - started_at) * 1000)
