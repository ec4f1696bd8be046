"""Analysis runner: owns the single active stream and its snapshot.

Coordinates the mapper provider, the stage aggregator and the progress
tracker for one channel.  Each submission gets a fresh
:class:`StageAggregator`, a new run id and a new generation number; the
reader task of the previous submission is cancelled and unwound before
the new one sends its request.

ARCHITECTURE NOTE:
    One reader task per run applies events strictly in arrival order, so
    the snapshot has exactly one writer and needs no locking.

    Supersession is explicit.  A reader only applies an event while its
    generation equals the runner's current generation; a superseded
    reader stops at its next event even if cancellation has not reached
    it yet.  Because every run also writes to its own aggregator, a stale
    reader can never mix its events into the new run's snapshot.

    ``submit`` installs the new run's id, aggregator and task before its
    first await, so overlapping submissions cannot orphan a reader.  The
    reader itself broadcasts the empty snapshot and re-checks its
    generation before contacting the backend; a run replaced in that
    window never sends a request.

    The response body is released on every exit path: the provider's
    async generator is closed in a ``finally`` block whether the stream
    finished, failed, or was cancelled.
"""

from __future__ import annotations

import asyncio
from uuid import uuid4

import structlog

from material_mapper.interfaces.mapper_provider import IMaterialMapperProvider
from material_mapper.models.graph import GraphView
from material_mapper.models.pipeline import AnalysisSnapshot, AnalysisStage
from material_mapper.pipeline.progress_tracker import ProgressTracker
from material_mapper.pipeline.stage_aggregator import StageAggregator
from material_mapper.services.graph_view_builder import build_graph_view_from_snapshot
from material_mapper.utils.errors import MaterialMapperError
from material_mapper.utils.logging import get_logger

DEFAULT_CHANNEL = "default"


class AnalysisRunner:
    """Submits strategies and folds the resulting stream into a snapshot.

    All dependencies are injected.  ``progress_tracker`` is optional;
    without it the runner still aggregates, it just broadcasts nothing.
    """

    def __init__(
        self,
        provider: IMaterialMapperProvider,
        progress_tracker: ProgressTracker | None = None,
        channel: str = DEFAULT_CHANNEL,
    ) -> None:
        self._provider = provider
        self._progress_tracker = progress_tracker
        self._channel = channel
        self._generation = 0
        self._run_id: str | None = None
        self._aggregator = StageAggregator()
        self._task: asyncio.Task | None = None
        self._retiring: set[asyncio.Task] = set()
        self._view_inputs: tuple | None = None
        self._view: GraphView | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> AnalysisSnapshot:
        return self._aggregator.snapshot

    @property
    def run_id(self) -> str | None:
        return self._run_id

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def graph_view(self) -> GraphView:
        """Graph view of the current snapshot, recomputed only on input change.

        The snapshot is copied per event, but unchanged fields keep their
        list objects, so the identity of the inputs tells whether the view
        is stale.
        """
        snap = self.snapshot
        inputs = (
            snap.matched_bmfs,
            snap.ecosystem_connections,
            snap.ecosystem_services,
            snap.ecosystem_service_details,
        )
        # The inputs are held, not just their ids, so an id cannot be reused.
        stale = self._view_inputs is None or any(
            new is not old for new, old in zip(inputs, self._view_inputs)
        )
        if self._view is None or stale:
            self._view = build_graph_view_from_snapshot(snap)
            self._view_inputs = inputs
        return self._view

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, strategy_description: str, *, stream: bool = True) -> str:
        """Start a new run, superseding any run still in flight.

        The new run's id, aggregator and reader task are installed before
        the first await, so overlapping calls always leave the newest
        submission in charge.  The previous reader is cancelled and has
        unwound before this returns; the new reader waits for it too, then
        broadcasts an empty snapshot before the request is sent.

        The text is sent to the backend exactly as given; surrounding
        whitespace only matters for the emptiness check.

        Returns
        -------
        str
            The new run's id.
        """
        if not strategy_description.strip():
            raise ValueError("strategy_description must not be empty")

        previous = self._task
        if previous is not None and not previous.done():
            previous.cancel()
            self._retiring.add(previous)
            previous.add_done_callback(self._retiring.discard)
        else:
            previous = None

        self._generation += 1
        generation = self._generation
        run_id = uuid4().hex
        aggregator = StageAggregator(run_id=run_id)
        self._run_id = run_id
        self._aggregator = aggregator
        self._task = asyncio.create_task(
            self._consume(generation, run_id, aggregator, previous, strategy_description, stream),
            name=f"analysis-{run_id}",
        )

        self._logger.info(
            "analysis_submitted",
            run_id=run_id,
            generation=generation,
            streaming=stream,
            chars=len(strategy_description),
        )

        if previous is not None:
            await asyncio.wait([previous])
            self._logger.info("analysis_superseded", task=previous.get_name())
        return run_id

    async def run(self, strategy_description: str, *, stream: bool = True) -> AnalysisSnapshot:
        """Submit and wait for the run to end; returns its final snapshot."""
        await self.submit(strategy_description, stream=stream)
        return await self.wait()

    async def wait(self) -> AnalysisSnapshot:
        """Wait until the newest reader task has finished.

        Follows supersession: if another submission replaces the run while
        waiting, the wait continues on the new run.
        """
        while True:
            task = self._task
            if task is None:
                break
            await asyncio.wait([task])
            if task is self._task:
                break
        return self.snapshot

    async def cancel(self) -> None:
        """Cancel the in-flight reader and any superseded one still unwinding."""
        task = self._task
        self._task = None
        pending = [t for t in (task, *self._retiring) if t is not None and not t.done()]
        if not pending:
            return
        for pending_task in pending:
            pending_task.cancel()
        await asyncio.wait(pending)
        self._logger.info("analysis_cancelled", tasks=[t.get_name() for t in pending])

    # ------------------------------------------------------------------
    # Reader loop
    # ------------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _consume(
        self,
        generation: int,
        run_id: str,
        aggregator: StageAggregator,
        previous: asyncio.Task | None,
        strategy_description: str,
        stream: bool,
    ) -> None:
        log = self._logger.bind(run_id=run_id)
        try:
            if previous is not None:
                await asyncio.wait([previous])
            await self._publish(generation, run_id, aggregator)
            if not self._is_current(generation):
                log.info("analysis_superseded_before_request")
                return

            if stream:
                await self._consume_stream(generation, run_id, aggregator, strategy_description, log)
            else:
                result = await self._provider.invoke(strategy_description)
                if self._is_current(generation):
                    aggregator.apply_result(result)
                    await self._publish(generation, run_id, aggregator)
        except MaterialMapperError as exc:
            if not self._is_current(generation):
                return
            log.error("analysis_failed", error_type=type(exc).__name__, error=exc.message)
            aggregator.fail(exc.message)
            await self._publish(generation, run_id, aggregator)
            return
        except asyncio.CancelledError:
            log.info("analysis_reader_cancelled")
            raise

        if not self._is_current(generation):
            return

        snapshot = aggregator.snapshot
        if not snapshot.is_terminal:
            log.warning("analysis_stream_ended_early", stage=snapshot.stage.value)
            aggregator.fail("Analysis stream ended before completion")
            await self._publish(generation, run_id, aggregator)
            return

        log.info(
            "analysis_finished",
            stage=snapshot.stage.value,
            materials=len(snapshot.extracted_materials),
            flows=len(snapshot.matched_bmfs),
            services=len(snapshot.ecosystem_services),
            processing_time_ms=snapshot.processing_time_ms,
        )

    async def _consume_stream(
        self,
        generation: int,
        run_id: str,
        aggregator: StageAggregator,
        strategy_description: str,
        log: structlog.BoundLogger,
    ) -> None:
        events = self._provider.stream_events(strategy_description)
        try:
            async for payload in events:
                if not self._is_current(generation):
                    log.info("analysis_stale_reader_stopped")
                    return
                before = aggregator.snapshot
                aggregator.apply_payload(payload)
                if aggregator.snapshot is not before:
                    await self._publish(generation, run_id, aggregator)
                if aggregator.snapshot.stage == AnalysisStage.ERROR:
                    log.error("analysis_backend_error", error=aggregator.snapshot.error)
                    return
        finally:
            await events.aclose()

    async def _publish(self, generation: int, run_id: str, aggregator: StageAggregator) -> None:
        if self._progress_tracker is None or not self._is_current(generation):
            return
        await self._progress_tracker.update(self._channel, run_id, aggregator.snapshot)
