"""Unit tests for HttpMapperProvider against an httpx.MockTransport backend."""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import scenario_events

from material_mapper.config.settings import Settings
from material_mapper.providers.mapper.http_mapper_provider import HttpMapperProvider
from material_mapper.utils.errors import ProtocolError, TransportError

STREAM_URL = "http://mapper.test/v1/agents/agents.ecoservices.material_mapper/invoke/stream"
INVOKE_URL = "http://mapper.test/v1/agents/agents.ecoservices.material_mapper/invoke"


def _sse_body(events: list[dict]) -> bytes:
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events).encode()


def _provider(settings: Settings, handler) -> HttpMapperProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpMapperProvider(settings, http_client=client)


# ======================================================================
# stream_events
# ======================================================================


class TestStreamEvents:
    @pytest.mark.asyncio
    async def test_posts_strategy_and_yields_records(self, settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_sse_body(scenario_events()))

        provider = _provider(settings, handler)
        records = [r async for r in provider.stream_events("Install rooftop solar panels")]

        assert [r["event_type"] for r in records] == [e["event_type"] for e in scenario_events()]
        assert str(seen[0].url) == STREAM_URL
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {
            "inputs": {"strategy_description": "Install rooftop solar panels"}
        }
        assert seen[0].headers["accept"] == "text/event-stream"

    @pytest.mark.asyncio
    async def test_non_success_status_raises_transport_error(self, settings: Settings) -> None:
        provider = _provider(settings, lambda request: httpx.Response(503, text="busy"))

        with pytest.raises(TransportError) as exc_info:
            [r async for r in provider.stream_events("x")]

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "Request failed: 503"
        assert exc_info.value.provider_name == "mapper-http"

    @pytest.mark.asyncio
    async def test_connection_failure_is_wrapped(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = _provider(settings, handler)

        with pytest.raises(TransportError) as exc_info:
            [r async for r in provider.stream_events("x")]

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_keep_alive_lines_and_bad_frames_are_skipped(self, settings: Settings) -> None:
        body = b": ping\n\ndata: not-json\n\n" + _sse_body([{"event_type": "complete"}])
        provider = _provider(settings, lambda request: httpx.Response(200, content=body))

        records = [r async for r in provider.stream_events("x")]

        assert records == [{"event_type": "complete"}]


# ======================================================================
# invoke
# ======================================================================


class TestInvoke:
    @pytest.mark.asyncio
    async def test_returns_validated_result(self, settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "result": {
                        "extracted_materials": ["steel"],
                        "matched_bmfs": [
                            {"bmf_name": "Scrap Steel", "flow_type": "outflow", "confidence": "high"}
                        ],
                        "processing_time_ms": 900,
                    }
                },
            )

        provider = _provider(settings, handler)
        result = await provider.invoke("Recycle steel beams")

        assert str(seen[0].url) == INVOKE_URL
        assert result.extracted_materials == ["steel"]
        assert result.matched_bmfs[0].name == "Scrap Steel"
        assert result.processing_time_ms == 900

    @pytest.mark.asyncio
    async def test_non_success_status(self, settings: Settings) -> None:
        provider = _provider(settings, lambda request: httpx.Response(500))
        with pytest.raises(TransportError) as exc_info:
            await provider.invoke("x")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_invalid_json_is_protocol_error(self, settings: Settings) -> None:
        provider = _provider(settings, lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProtocolError):
            await provider.invoke("x")

    @pytest.mark.asyncio
    async def test_missing_result_is_protocol_error(self, settings: Settings) -> None:
        provider = _provider(settings, lambda request: httpx.Response(200, json={"status": "ok"}))
        with pytest.raises(ProtocolError, match="no result object"):
            await provider.invoke("x")

    @pytest.mark.asyncio
    async def test_schema_invalid_result_is_protocol_error(self, settings: Settings) -> None:
        provider = _provider(
            settings,
            lambda request: httpx.Response(200, json={"result": {"extracted_materials": "steel"}}),
        )
        with pytest.raises(ProtocolError, match="failed validation"):
            await provider.invoke("x")


# ======================================================================
# Metadata and lifecycle
# ======================================================================


class TestProviderMetadata:
    def test_provider_name(self, settings: Settings) -> None:
        assert HttpMapperProvider(settings).get_provider_name() == "mapper-http"

    def test_available_with_url_and_agent(self, settings: Settings) -> None:
        assert HttpMapperProvider(settings).is_available() is True

    def test_unavailable_without_url(self) -> None:
        settings = Settings(_env_file=None, mapper_api_url="")
        assert HttpMapperProvider(settings).is_available() is False

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, settings: Settings) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        provider = HttpMapperProvider(settings, http_client=client)
        await provider.aclose()
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self, settings: Settings) -> None:
        provider = HttpMapperProvider(settings)
        await provider.aclose()
        assert provider._client.is_closed
