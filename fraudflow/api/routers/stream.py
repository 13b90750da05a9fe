"""
SSE Change Stream.

GET /api/v1/stream

Client usage:
    const es = new EventSource('/api/v1/stream');
    es.onmessage = (e) => { const change = JSON.parse(e.data); ... };

Each message is {"type": "<collection>.<created|updated>", "id": ..., "version": ...}.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from fraudflow.api.deps import get_container
from fraudflow.container import Container

router = APIRouter(prefix="/api/v1/stream", tags=["stream"])


@router.get("")
async def change_stream(container: Container = Depends(get_container)):
    return StreamingResponse(
        container.notifier.subscribe(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
