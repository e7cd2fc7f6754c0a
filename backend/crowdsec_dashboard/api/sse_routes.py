"""
Live update streams (server-sent events).

Endpoints:
- GET /sse/decisions - Active decisions, pushed after every sync
- GET /sse/hosts - All hosts, pushed after every sync

Each message carries the full current collection as JSON.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from crowdsec_dashboard.services.broadcaster import Broadcaster, get_broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sse", tags=["Live updates"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def event_stream(request: Request, channel: str, broadcaster: Broadcaster):
    subscription = broadcaster.subscribe(channel)

    async def frames():
        try:
            async for frame in subscription.frames():
                if await request.is_disconnected():
                    break
                yield frame
        finally:
            broadcaster.unsubscribe(subscription)

    return StreamingResponse(frames(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/decisions", summary="Stream active decisions")
async def stream_decisions(request: Request):
    return event_stream(request, "decisions", get_broadcaster())


@router.get("/hosts", summary="Stream hosts")
async def stream_hosts(request: Request):
    return event_stream(request, "hosts", get_broadcaster())
