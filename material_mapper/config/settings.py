"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# This class uses pydantic-settings to read configuration from TWO
# sources (in priority order):
#
#   1. **Environment variables** - e.g., MAPPER_API_URL=https://api.example
#      (highest priority - always wins)
#   2. **.env file** - key=value lines in the project root .env file
#      (lower priority - used for local development)
#
# Field name `mapper_api_url` maps to env var `MAPPER_API_URL`.
# Defaults are used when neither an env var nor a .env entry exists.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Material Mapper application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Analysis backend ===
    mapper_api_url: str = "http://localhost:8001"
    mapper_agent_id: str = "agents.ecoservices.material_mapper"
    # Only the connection phase is bounded.  Reads block until the backend
    # emits the next chunk or closes the connection.
    mapper_connect_timeout: float = 10.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def stream_url(self) -> str:
        """Return the streaming ``invoke/stream`` endpoint for the agent."""
        return f"{self._agent_base()}/invoke/stream"

    def invoke_url(self) -> str:
        """Return the single-document ``invoke`` endpoint for the agent."""
        return f"{self._agent_base()}/invoke"

    def _agent_base(self) -> str:
        return f"{self.mapper_api_url.rstrip('/')}/v1/agents/{self.mapper_agent_id}"
