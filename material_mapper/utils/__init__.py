"""Utility modules for Material Mapper.

- **errors** -- Domain-specific exception hierarchy rooted at
  MaterialMapperError, split along the transport / protocol / semantic
  failure taxonomy of the analysis stream.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from material_mapper.utils.errors import (
    AnalysisFailedError,
    ConfigurationError,
    MaterialMapperError,
    ProtocolError,
    TransportError,
)
from material_mapper.utils.logging import configure_logging, get_logger

__all__ = [
    "AnalysisFailedError",
    "ConfigurationError",
    "MaterialMapperError",
    "ProtocolError",
    "TransportError",
    "configure_logging",
    "get_logger",
]
