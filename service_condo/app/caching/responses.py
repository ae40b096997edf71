"""
Response helpers shared by the cache decorators.
"""

from typing import Any, Callable

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.responses import Response


class CapturedResponse(Response):
    """A response whose body has been buffered from another response.

    Streaming responses only expose their body as an iterator; capturing
    drains it once and re-exposes the bytes with the original status,
    headers and background work.
    """

    def __init__(self, original: Response, body: bytes):
        super().__init__(
            content=body,
            status_code=original.status_code,
            background=original.background,
        )
        self.raw_headers = [
            (name, value) for name, value in original.raw_headers if name.lower() != b"content-length"
        ] + [(b"content-length", str(len(body)).encode("latin-1"))]

    @classmethod
    async def capture(cls, response: Response) -> Response:
        """Return a response whose ``body`` attribute holds the full body."""
        if isinstance(getattr(response, "body", None), (bytes, bytearray)):
            return response

        charset = getattr(response, "charset", "utf-8")
        chunks = []
        async for chunk in response.body_iterator:
            chunks.append(chunk if isinstance(chunk, (bytes, bytearray)) else chunk.encode(charset))
        return cls(response, b"".join(chunks))


def add_background_task(response: Response, func: Callable[..., Any], *args: Any) -> None:
    """Run ``func`` after the response has been sent, keeping existing tasks."""
    task = BackgroundTask(func, *args)
    existing = response.background
    if existing is None:
        response.background = task
    elif isinstance(existing, BackgroundTasks):
        existing.tasks.append(task)
    else:
        response.background = BackgroundTasks(tasks=[existing, task])
