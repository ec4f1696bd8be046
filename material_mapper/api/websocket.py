"""WebSocket endpoint for real-time analysis progress.

Connects a client to the analysis channel via the ``ProgressTracker``
listener mechanism.  Every snapshot the runner publishes is pushed as a
JSON summary containing ``run_id``, ``stage``, ``message``,
``chunk_progress`` and the material / flow / service counts.

# ─── HOW WEBSOCKET PROGRESS WORKS ─────────────────────────────────────
#
#   Client                               Backend (this file)
#   ──────                               ──────────────────
#   ws = new WebSocket(url)   ──────→   websocket.accept()
#                                        register_listener(callback)
#                             ←──────   send current summary
#                                        ...stream events applied...
#                             ←──────   push summary (JSON)
#                             ←──────   push summary (JSON)
#   ws.close()                ──────→   WebSocketDisconnect
#                                        unregister_listener(callback)
#
# A new submission shows up as a summary with a new run_id and stage
# "idle" before any event of the new run.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from material_mapper.models.pipeline import AnalysisSnapshot
from material_mapper.pipeline.progress_tracker import ProgressTracker, summarize
from material_mapper.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_progress(websocket: WebSocket) -> None:
    """Stream analysis summaries to the client until it disconnects.

    Parameters
    ----------
    websocket:
        The WebSocket connection managed by FastAPI / Starlette.
    """
    progress_tracker: ProgressTracker = websocket.app.state.progress_tracker
    channel: str = websocket.app.state.channel

    await websocket.accept()
    _logger.info("websocket_connected", channel=channel)

    async def _on_progress(_channel: str, run_id: str, snapshot: AnalysisSnapshot) -> None:
        # The socket may close between the check and the send; cleanup
        # happens in the finally block below.
        with contextlib.suppress(Exception):
            await websocket.send_json(summarize(run_id, snapshot))

    progress_tracker.register_listener(channel, _on_progress)

    try:
        await websocket.send_json(progress_tracker.get_status(channel))

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", channel=channel)

    finally:
        progress_tracker.unregister_listener(channel, _on_progress)
        _logger.debug("websocket_listener_cleaned_up", channel=channel)
