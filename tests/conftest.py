"""Shared pytest fixtures for the Material Mapper test suite."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest

from material_mapper.config.settings import Settings
from material_mapper.interfaces.mapper_provider import IMaterialMapperProvider
from material_mapper.models.mapper import MapperResult

# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


class FakeMapperProvider(IMaterialMapperProvider):
    """Scripted in-process backend.

    Yields ``events`` in order.  When ``gate`` is set, the generator waits
    on it after ``pause_after`` events, which lets a test hold a stream
    open while it submits another one.
    """

    def __init__(
        self,
        events: list[dict[str, Any]] | None = None,
        *,
        result: MapperResult | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
        pause_after: int = 0,
    ) -> None:
        self.events = list(events or [])
        self.result = result or MapperResult()
        self.error = error
        self.gate = gate
        self.pause_after = pause_after
        self.requests: list[str] = []
        self.closed = 0
        self.yielded = 0

    async def stream_events(self, strategy_description: str) -> AsyncIterator[dict[str, Any]]:
        self.requests.append(strategy_description)
        try:
            if self.error is not None:
                raise self.error
            for index, event in enumerate(self.events):
                if self.gate is not None and index == self.pause_after:
                    await self.gate.wait()
                self.yielded += 1
                yield event
        finally:
            self.closed += 1

    async def invoke(self, strategy_description: str) -> MapperResult:
        self.requests.append(strategy_description)
        if self.error is not None:
            raise self.error
        return self.result

    def get_provider_name(self) -> str:
        return "fake-mapper"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def flow_payload(
    name: str,
    flow_type: str = "outflow",
    confidence: str = "high",
    materials: list[str] | None = None,
    reason: str = "",
) -> dict[str, Any]:
    return {
        "name": name,
        "flow_type": flow_type,
        "confidence": confidence,
        "matched_materials": materials or [],
        "reason": reason,
    }


def connection_payload(flow: str, service: str, relationship: str = "") -> dict[str, Any]:
    return {"bmf_name": flow, "ecosystem_service": service, "relationship_type": relationship}


def scenario_events() -> list[dict[str, Any]]:
    """The solar panel / glass walkthrough, ending with ``complete``."""
    return [
        {"event_type": "stage1_start", "message": "Extracting materials..."},
        {
            "event_type": "stage1_complete",
            "message": "Found 2 materials",
            "elapsed_ms": 850,
            "extracted_materials": ["solar panel", "glass"],
        },
        {"event_type": "stage2_start", "message": "Matching flows...", "total_chunks": 1},
        {
            "event_type": "stage2_chunk_complete",
            "current_chunk": 1,
            "matched_bmfs": [
                flow_payload(
                    "Solar Energy Flow",
                    materials=["solar panel"],
                    reason="Panels export renewable energy",
                )
            ],
        },
        {"event_type": "stage3_start", "message": "Linking ecosystem services..."},
        {
            "event_type": "stage3_complete",
            "ecosystem_connections": [
                connection_payload("Solar Energy Flow", "Climate Regulation", "mitigates")
            ],
            "ecosystem_services": ["Climate Regulation"],
        },
        {"event_type": "complete", "message": "Analysis complete", "elapsed_ms": 4200},
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings pointed at a fake backend, ignoring any local .env."""
    return Settings(
        _env_file=None,
        mapper_api_url="http://mapper.test",
        mapper_agent_id="agents.ecoservices.material_mapper",
    )


@pytest.fixture
def scenario() -> list[dict[str, Any]]:
    return scenario_events()


@pytest.fixture
def fake_provider(scenario: list[dict[str, Any]]) -> FakeMapperProvider:
    return FakeMapperProvider(scenario)
