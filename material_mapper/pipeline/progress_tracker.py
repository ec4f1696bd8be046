"""Analysis progress tracking with callback-based listener notification.

Stores the latest :class:`AnalysisSnapshot` for each channel and broadcasts
every new snapshot to the listener callbacks registered for that channel.
A channel is whatever owns one analysis runner (the web app uses a single
``"default"`` channel; the CLI uses its own).

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
# This implements the Observer pattern:
#
#   AnalysisRunner ──update()──→ ProgressTracker ──callback()──→ WebSocket handler
#                                                 ──callback()──→ CLI status line
#
#   1. The runner calls tracker.update(channel, run_id, snapshot) after
#      every applied event (and once with an empty snapshot on submit)
#   2. ProgressTracker stores the snapshot and calls all listeners
#   3. Listeners push a summary to the browser / terminal
#
# Listener errors are caught and logged so one broken listener cannot
# stall the stream reader or the other listeners.  Both sync and async
# callbacks are supported.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from material_mapper.models.pipeline import AnalysisSnapshot
from material_mapper.utils.logging import get_logger


@dataclass
class _ChannelStatus:
    """Internal record of a channel's latest run (never serialized)."""

    run_id: str | None = None
    snapshot: AnalysisSnapshot = field(default_factory=AnalysisSnapshot)


class ProgressTracker:
    """Tracks and broadcasts analysis snapshots via callbacks."""

    def __init__(self) -> None:
        self._statuses: dict[str, _ChannelStatus] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(self, channel: str, run_id: str, snapshot: AnalysisSnapshot) -> None:
        """Record a new snapshot and notify all registered listeners.

        Parameters
        ----------
        channel:
            The channel the run belongs to.
        run_id:
            Identifier of the run that produced *snapshot*.
        snapshot:
            The run's snapshot after the latest applied event.
        """
        self._statuses[channel] = _ChannelStatus(run_id=run_id, snapshot=snapshot)

        self._logger.debug(
            "progress_update",
            channel=channel,
            run_id=run_id,
            stage=snapshot.stage.value,
            flows=len(snapshot.matched_bmfs),
        )

        await self._notify_listeners(channel, run_id, snapshot)

    def register_listener(self, channel: str, callback: Callable) -> None:
        """Register a callback receiving ``(channel, run_id, snapshot)``."""
        if channel not in self._listeners:
            self._listeners[channel] = []

        if callback not in self._listeners[channel]:
            self._listeners[channel].append(callback)
            self._logger.debug(
                "listener_registered",
                channel=channel,
                total_listeners=len(self._listeners[channel]),
            )

    def unregister_listener(self, channel: str, callback: Callable) -> None:
        """Remove a previously registered callback for a channel."""
        listeners = self._listeners.get(channel, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                channel=channel,
                remaining_listeners=len(listeners),
            )

    def get_status(self, channel: str) -> dict:
        """Return a JSON-ready summary of the channel's latest snapshot.

        Keys: ``run_id``, ``stage``, ``message``, ``chunk_progress``,
        ``materials``, ``flows``, ``services``, ``error``.  Zeroed
        defaults are returned for a channel with no run yet.
        """
        status = self._statuses.get(channel) or _ChannelStatus()
        return summarize(status.run_id, status.snapshot)

    def get_snapshot(self, channel: str) -> AnalysisSnapshot:
        status = self._statuses.get(channel)
        return status.snapshot if status else AnalysisSnapshot()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(
        self,
        channel: str,
        run_id: str,
        snapshot: AnalysisSnapshot,
    ) -> None:
        """Invoke all listeners for a channel, logging and skipping failures."""
        listeners = list(self._listeners.get(channel, []))
        if not listeners:
            return

        for callback in listeners:
            try:
                result = callback(channel, run_id, snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    channel=channel,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )


def summarize(run_id: str | None, snapshot: AnalysisSnapshot) -> dict:
    """Compact status view of a snapshot for progress feeds."""
    return {
        "run_id": run_id,
        "stage": snapshot.stage.value,
        "message": snapshot.message,
        "chunk_progress": round(snapshot.chunk_progress, 1),
        "materials": len(snapshot.extracted_materials),
        "flows": len(snapshot.matched_bmfs),
        "services": len(snapshot.ecosystem_services),
        "error": snapshot.error,
    }
