"""HTTP adapter for the material-mapper agent endpoints.

Talks to the analysis backend's agent API:

    POST {api_url}/v1/agents/{agent_id}/invoke/stream   → ``data:`` framed events
    POST {api_url}/v1/agents/{agent_id}/invoke          → {"result": {...}}

Both take ``{"inputs": {"strategy_description": ...}}`` as a JSON body.
Uses an injected ``httpx.AsyncClient`` (shared across the app); when none
is given the provider owns its own client and closes it in :meth:`aclose`.

The streaming request has no read timeout.  A stalled backend blocks the
reader until the connection errors or closes; only connecting is bounded.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import ValidationError

from material_mapper.config.settings import Settings
from material_mapper.interfaces.mapper_provider import IMaterialMapperProvider
from material_mapper.models.mapper import MapperResult
from material_mapper.pipeline.frame_parser import iter_frames
from material_mapper.utils.errors import ProtocolError, TransportError
from material_mapper.utils.logging import get_logger

logger = get_logger(__name__)

_HEADERS = {"Content-Type": "application/json", "Accept": "text/event-stream"}


class HttpMapperProvider(IMaterialMapperProvider):
    """Material-mapper backend reached over HTTP."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._timeout = httpx.Timeout(None, connect=settings.mapper_connect_timeout)

    # ------------------------------------------------------------------
    # IMaterialMapperProvider implementation
    # ------------------------------------------------------------------

    async def stream_events(self, strategy_description: str) -> AsyncIterator[dict[str, Any]]:
        url = self._settings.stream_url()
        body = _request_body(strategy_description)
        logger.info("mapper_stream_request", url=url, chars=len(strategy_description))

        try:
            async with self._client.stream(
                "POST", url, json=body, headers=_HEADERS, timeout=self._timeout
            ) as response:
                if not response.is_success:
                    raise TransportError(
                        message=f"Request failed: {response.status_code}",
                        provider_name=self.get_provider_name(),
                        status_code=response.status_code,
                    )
                async for record in iter_frames(response.aiter_bytes()):
                    yield record
        except httpx.HTTPError as exc:
            raise TransportError(
                message=f"Analysis stream failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("mapper_stream_closed", url=url)

    async def invoke(self, strategy_description: str) -> MapperResult:
        url = self._settings.invoke_url()
        try:
            response = await self._client.post(
                url,
                json=_request_body(strategy_description),
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise TransportError(
                message=f"Analysis request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.is_success:
            raise TransportError(
                message=f"Request failed: {response.status_code}",
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            )

        try:
            document = response.json()
        except ValueError as exc:
            raise ProtocolError(
                message="Analysis response is not valid JSON",
                provider_name=self.get_provider_name(),
            ) from exc

        if not isinstance(document, dict) or not isinstance(document.get("result"), dict):
            raise ProtocolError(
                message="Analysis response has no result object",
                provider_name=self.get_provider_name(),
            )

        try:
            result = MapperResult.model_validate(document["result"])
        except ValidationError as exc:
            raise ProtocolError(
                message=f"Analysis result failed validation: {exc.error_count()} error(s)",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "mapper_invoke_complete",
            materials=len(result.extracted_materials),
            flows=len(result.matched_bmfs),
            processing_time_ms=result.processing_time_ms,
        )
        return result

    def get_provider_name(self) -> str:
        return "mapper-http"

    def is_available(self) -> bool:
        return bool(self._settings.mapper_api_url and self._settings.mapper_agent_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()


def _request_body(strategy_description: str) -> dict[str, Any]:
    return {"inputs": {"strategy_description": strategy_description}}
