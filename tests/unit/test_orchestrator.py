"""Unit tests for AnalysisRunner: run lifecycle, failures and supersession."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from conftest import FakeMapperProvider, scenario_events

from material_mapper.interfaces.mapper_provider import IMaterialMapperProvider
from material_mapper.models.mapper import MapperResult
from material_mapper.models.pipeline import AnalysisSnapshot, AnalysisStage
from material_mapper.pipeline.orchestrator import AnalysisRunner
from material_mapper.pipeline.progress_tracker import ProgressTracker
from material_mapper.utils.errors import TransportError


class _RoutingProvider(IMaterialMapperProvider):
    """Routes each strategy text to its own scripted backend."""

    def __init__(self, routes: dict[str, FakeMapperProvider]) -> None:
        self.routes = routes

    def stream_events(self, strategy_description: str) -> AsyncIterator[dict[str, Any]]:
        return self.routes[strategy_description].stream_events(strategy_description)

    async def invoke(self, strategy_description: str) -> MapperResult:
        return await self.routes[strategy_description].invoke(strategy_description)

    def get_provider_name(self) -> str:
        return "routing"

    def is_available(self) -> bool:
        return True


async def _until(predicate: Callable[[], bool], attempts: int = 200, delay: float = 0) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(delay)
    raise AssertionError("condition not reached")


def _recording_tracker() -> tuple[ProgressTracker, list[tuple[str, AnalysisSnapshot]]]:
    tracker = ProgressTracker()
    updates: list[tuple[str, AnalysisSnapshot]] = []
    tracker.register_listener("default", lambda channel, run_id, snap: updates.append((run_id, snap)))
    return tracker, updates


# ======================================================================
# Happy path
# ======================================================================


class TestRun:
    @pytest.mark.asyncio
    async def test_scenario_completes(self, fake_provider: FakeMapperProvider) -> None:
        runner = AnalysisRunner(fake_provider)

        snapshot = await runner.run("Install rooftop solar panels")

        assert snapshot.stage == AnalysisStage.COMPLETE
        assert snapshot.extracted_materials == ["solar panel", "glass"]
        assert snapshot.flow_names() == ["Solar Energy Flow"]
        assert snapshot.ecosystem_services == ["Climate Regulation"]
        assert fake_provider.requests == ["Install rooftop solar panels"]
        assert fake_provider.closed == 1
        assert not runner.is_active

    @pytest.mark.asyncio
    async def test_strategy_text_is_sent_unchanged(self, fake_provider: FakeMapperProvider) -> None:
        runner = AnalysisRunner(fake_provider)
        await runner.run("  solar  \n")
        assert fake_provider.requests == ["  solar  \n"]

    @pytest.mark.asyncio
    async def test_progress_is_published_per_changing_event(
        self, fake_provider: FakeMapperProvider
    ) -> None:
        tracker, updates = _recording_tracker()
        runner = AnalysisRunner(fake_provider, tracker)

        run_id = await runner.submit("solar")
        await runner.wait()

        stages = [snap.stage for _, snap in updates]
        assert stages[0] == AnalysisStage.IDLE
        assert stages[-1] == AnalysisStage.COMPLETE
        assert len(updates) == 1 + len(scenario_events())
        assert {rid for rid, _ in updates} == {run_id}
        assert tracker.get_status("default")["stage"] == "complete"

    @pytest.mark.asyncio
    async def test_non_streaming_invoke(self) -> None:
        provider = FakeMapperProvider(
            result=MapperResult(extracted_materials=["steel"], processing_time_ms=250)
        )
        runner = AnalysisRunner(provider)

        snapshot = await runner.run("steel", stream=False)

        assert snapshot.stage == AnalysisStage.COMPLETE
        assert snapshot.extracted_materials == ["steel"]
        assert snapshot.processing_time_ms == 250
        assert provider.closed == 0

    @pytest.mark.asyncio
    async def test_blank_strategy_rejected(self, fake_provider: FakeMapperProvider) -> None:
        runner = AnalysisRunner(fake_provider)
        with pytest.raises(ValueError):
            await runner.submit("   ")
        assert runner.run_id is None
        assert fake_provider.requests == []

    @pytest.mark.asyncio
    async def test_wait_without_run_returns_idle_snapshot(self, fake_provider) -> None:
        runner = AnalysisRunner(fake_provider)
        assert (await runner.wait()).stage == AnalysisStage.IDLE


# ======================================================================
# Failures
# ======================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_transport_error_ends_in_error_stage(self) -> None:
        provider = FakeMapperProvider(
            error=TransportError("Request failed: 502", provider_name="fake", status_code=502)
        )
        snapshot = await AnalysisRunner(provider).run("x")

        assert snapshot.stage == AnalysisStage.ERROR
        assert snapshot.error == "Request failed: 502"

    @pytest.mark.asyncio
    async def test_invoke_error_ends_in_error_stage(self) -> None:
        provider = FakeMapperProvider(error=TransportError("Request failed: 500"))
        snapshot = await AnalysisRunner(provider).run("x", stream=False)
        assert snapshot.error == "Request failed: 500"

    @pytest.mark.asyncio
    async def test_stream_ending_early_is_an_error(self) -> None:
        provider = FakeMapperProvider(scenario_events()[:3])
        snapshot = await AnalysisRunner(provider).run("x")

        assert snapshot.stage == AnalysisStage.ERROR
        assert snapshot.error == "Analysis stream ended before completion"
        assert snapshot.extracted_materials == ["solar panel", "glass"]

    @pytest.mark.asyncio
    async def test_backend_error_stops_reading(self) -> None:
        provider = FakeMapperProvider(
            [
                {"event_type": "stage1_start"},
                {"event_type": "error", "error": "Model quota exceeded"},
                {"event_type": "stage2_start", "total_chunks": 2},
            ]
        )
        snapshot = await AnalysisRunner(provider).run("x")

        assert snapshot.stage == AnalysisStage.ERROR
        assert snapshot.error == "Model quota exceeded"
        assert provider.yielded == 2
        assert provider.closed == 1

    @pytest.mark.asyncio
    async def test_malformed_event_is_skipped(self) -> None:
        events = scenario_events()
        events.insert(2, {"event_type": "stage2_start", "total_chunks": "lots"})
        snapshot = await AnalysisRunner(FakeMapperProvider(events)).run("x")
        assert snapshot.stage == AnalysisStage.COMPLETE


# ======================================================================
# Supersession
# ======================================================================


class TestSupersession:
    @pytest.mark.asyncio
    async def test_new_submission_replaces_in_flight_run(self) -> None:
        gate = asyncio.Event()
        slow = FakeMapperProvider(scenario_events(), gate=gate, pause_after=2)
        fast = FakeMapperProvider(
            [
                {"event_type": "stage1_complete", "extracted_materials": ["timber"]},
                {"event_type": "complete", "message": "done"},
            ]
        )
        tracker, updates = _recording_tracker()
        runner = AnalysisRunner(_RoutingProvider({"A": slow, "B": fast}), tracker)

        run_a = await runner.submit("A")
        await _until(lambda: slow.yielded == 2)
        assert runner.snapshot.extracted_materials == ["solar panel", "glass"]

        run_b = await runner.submit("B")
        assert slow.closed == 1
        assert runner.generation == 2

        snapshot = await runner.wait()
        gate.set()
        await asyncio.sleep(0)

        assert run_a != run_b
        assert runner.run_id == run_b
        assert snapshot.extracted_materials == ["timber"]
        assert runner.snapshot.extracted_materials == ["timber"]
        assert slow.yielded == 2

        first_b = next(i for i, (rid, _) in enumerate(updates) if rid == run_b)
        assert updates[first_b][1].stage == AnalysisStage.IDLE
        assert all(rid == run_b for rid, _ in updates[first_b:])

    @pytest.mark.asyncio
    async def test_cancel_stops_reader_and_closes_stream(self) -> None:
        gate = asyncio.Event()
        provider = FakeMapperProvider(scenario_events(), gate=gate, pause_after=1)
        runner = AnalysisRunner(provider)

        await runner.submit("x")
        await _until(lambda: provider.yielded == 1)
        await runner.cancel()

        assert not runner.is_active
        assert provider.closed == 1
        assert runner.snapshot.stage == AnalysisStage.STAGE1

    @pytest.mark.asyncio
    async def test_overlapping_submissions_keep_newest_reader(self) -> None:
        gate = asyncio.Event()
        first = FakeMapperProvider(scenario_events())
        second = FakeMapperProvider(scenario_events(), gate=gate, pause_after=1)
        delays = iter([0.03, 0.001])

        async def slow_listener(channel: str, run_id: str, snapshot: AnalysisSnapshot) -> None:
            await asyncio.sleep(next(delays, 0))

        tracker = ProgressTracker()
        tracker.register_listener("default", slow_listener)
        runner = AnalysisRunner(_RoutingProvider({"A": first, "B": second}), tracker)

        run_a, run_b = await asyncio.gather(runner.submit("A"), runner.submit("B"))

        assert run_a != run_b
        assert runner.run_id == run_b
        assert runner._task is not None
        assert runner._task.get_name() == f"analysis-{run_b}"

        await _until(lambda: second.yielded == 1, delay=0.005)
        assert first.requests == []
        assert second.requests == ["B"]

        await runner.cancel()

        live = [
            task
            for task in asyncio.all_tasks()
            if task.get_name().startswith("analysis-") and not task.done()
        ]
        assert live == []
        assert not runner.is_active
        assert second.closed == 1

    @pytest.mark.asyncio
    async def test_run_replaced_while_broadcasting_never_sends_request(self) -> None:
        first = FakeMapperProvider(scenario_events())
        second = FakeMapperProvider(scenario_events())
        entered = asyncio.Event()
        seen: list[str] = []

        async def slow_listener(channel: str, run_id: str, snapshot: AnalysisSnapshot) -> None:
            seen.append(run_id)
            entered.set()
            await asyncio.sleep(0.005)

        tracker = ProgressTracker()
        tracker.register_listener("default", slow_listener)
        runner = AnalysisRunner(_RoutingProvider({"A": first, "B": second}), tracker)

        run_a = await runner.submit("A")
        await entered.wait()
        run_b = await runner.submit("B")
        snapshot = await runner.wait()

        assert snapshot.stage == AnalysisStage.COMPLETE
        assert first.requests == []
        assert second.requests == ["B"]
        assert seen[0] == run_a
        assert all(rid == run_b for rid in seen[1:])


# ======================================================================
# Graph view
# ======================================================================


class TestGraphView:
    @pytest.mark.asyncio
    async def test_view_is_reused_while_inputs_unchanged(
        self, fake_provider: FakeMapperProvider
    ) -> None:
        runner = AnalysisRunner(fake_provider)
        await runner.run("solar")

        first = runner.graph_view()
        assert runner.graph_view() is first
        assert [item.id for item in first.left_items] == ["Solar Energy Flow"]
        assert [item.id for item in first.right_items] == ["Climate Regulation"]

    @pytest.mark.asyncio
    async def test_view_follows_new_run(self, fake_provider: FakeMapperProvider) -> None:
        runner = AnalysisRunner(fake_provider)
        await runner.run("solar")
        populated = runner.graph_view()

        fake_provider.events = [{"event_type": "complete"}]
        await runner.run("nothing")

        assert runner.graph_view() is not populated
        assert runner.graph_view().is_empty
