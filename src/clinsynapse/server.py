"""
server.py — WebSocket transport for the workflow.

One client message = one workflow run. Events from clinsynapse.events are
forwarded as JSON in order. The run itself is drained by a background task:
if the client disconnects, forwarding stops but the run finishes and its
remaining events are discarded.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from clinsynapse.events import error_event, stream_events

logger = logging.getLogger(__name__)

app = FastAPI(title="ClinSynapse Workflow")

# Strong references so in-flight runs are not garbage-collected after a disconnect.
_background_runs: set[asyncio.Task] = set()

_DONE = object()


def parse_query(message: str) -> str:
    """Accept {"userQuery": ...} (or {"user_query": ...}); anything else is the query itself."""
    try:
        payload = json.loads(message)
    except json.JSONDecodeError:
        return message.strip()
    if isinstance(payload, dict):
        return str(payload.get("userQuery") or payload.get("user_query") or "").strip()
    if isinstance(payload, str):
        return payload.strip()
    return message.strip()


async def _drain(user_query: str, queue: asyncio.Queue) -> None:
    try:
        async for event in stream_events(user_query):
            await queue.put(event)
    finally:
        await queue.put(_DONE)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    logger.info("WebSocket connection opened")
    try:
        while True:
            message = await websocket.receive_text()
            user_query = parse_query(message)
            if not user_query:
                await websocket.send_json(error_event("userQuery must be a non-empty string"))
                continue

            queue: asyncio.Queue = asyncio.Queue()
            task = asyncio.create_task(_drain(user_query, queue))
            _background_runs.add(task)
            task.add_done_callback(_background_runs.discard)

            while True:
                event = await queue.get()
                if event is _DONE:
                    break
                await websocket.send_json(event)
    except WebSocketDisconnect:
        logger.info("WebSocket connection closed")


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8080")))
