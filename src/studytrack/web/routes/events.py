"""Tree change stream (Server-Sent Events)."""

import asyncio
import json
from typing import AsyncGenerator

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from studytrack.core.hierarchy import Tree, tree_to_document
from studytrack.web.tracker import get_sync_controller

router = APIRouter(prefix="/api/events", tags=["events"])

KEEPALIVE_SECONDS = 30.0


def format_tree_event(tree: Tree) -> str:
    """Format a tree as one SSE message."""
    return f"event: tree\ndata: {json.dumps(tree_to_document(tree))}\n\n"


async def _event_generator() -> AsyncGenerator[str, None]:
    """Yield the current tree, then every replacement of it."""
    controller = get_sync_controller()
    queue: asyncio.Queue[Tree] = asyncio.Queue()
    remove_listener = controller.add_listener(queue.put_nowait)

    try:
        yield format_tree_event(controller.tree)
        while True:
            try:
                tree = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield "event: keepalive\ndata: ping\n\n"
                continue
            yield format_tree_event(tree)
    finally:
        remove_listener()


@router.get("")
async def stream_events() -> StreamingResponse:
    """Stream tree snapshots using Server-Sent Events.

    Events:
    - tree: the whole tree in document form
    - keepalive: sent every 30s to keep the connection alive
    """
    return StreamingResponse(
        _event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
