"""Unit tests for the application factories in material_mapper/main.py.

Covers settings validation, ``_build_all`` wiring, and the ``create_app``
route table.  No server is started and no network calls are made.
"""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI

from material_mapper.config.settings import Settings
from material_mapper.pipeline.orchestrator import DEFAULT_CHANNEL, AnalysisRunner
from material_mapper.services.bipartite_graph import BipartiteGraph
from material_mapper.utils.errors import ConfigurationError


def _settings(**overrides) -> Settings:
    defaults = {
        "mapper_api_url": "http://mapper.test",
        "mapper_agent_id": "agents.ecoservices.material_mapper",
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


# ======================================================================
# _validate_settings / _build_all
# ======================================================================


class TestBuildAll:
    def test_rejects_non_http_url(self) -> None:
        from material_mapper.main import _build_all

        with pytest.raises(ConfigurationError, match="http"):
            _build_all(_settings(mapper_api_url="mapper.test:8001"))

    def test_rejects_empty_agent(self) -> None:
        from material_mapper.main import _validate_settings

        with pytest.raises(ConfigurationError):
            _validate_settings(_settings(mapper_agent_id=""))

    @pytest.mark.asyncio
    async def test_components_are_wired(self) -> None:
        from material_mapper.main import _build_all

        components = _build_all(
            _settings(), {"graph": {"left_header": "Flows", "right_header": "Services"}}
        )
        try:
            assert isinstance(components["http_client"], httpx.AsyncClient)
            assert isinstance(components["runner"], AnalysisRunner)
            assert isinstance(components["graph"], BipartiteGraph)
            assert components["graph"].layout.left_header == "Flows"
            assert components["channel"] == DEFAULT_CHANNEL
            assert components["provider_registry"] == {"mapper": True}
            assert components["provider"].get_provider_name() == "mapper-http"
        finally:
            await components["http_client"].aclose()

    @pytest.mark.asyncio
    async def test_graph_layout_defaults_without_config(self) -> None:
        from material_mapper.main import _build_all

        components = _build_all(_settings())
        try:
            assert components["graph"].layout.left_header == "Sources"
        finally:
            await components["http_client"].aclose()


# ======================================================================
# create_app
# ======================================================================


class TestCreateApp:
    def test_returns_fastapi_instance(self) -> None:
        from material_mapper.main import create_app

        application = create_app()
        assert isinstance(application, FastAPI)
        assert application.title == "Material Mapper API"
        assert application.version == "0.1.0"

    def test_app_has_api_routes(self) -> None:
        from material_mapper.main import create_app

        paths = [route.path for route in create_app().routes]
        assert "/api/v1/analyses" in paths
        assert "/api/v1/analyses/current/graph.svg" in paths
        assert "/api/v1/health" in paths

    def test_app_has_websocket_route(self) -> None:
        from material_mapper.main import create_app

        paths = [route.path for route in create_app().routes]
        assert "/ws/progress" in paths
