"""Abstract base class for material-mapper analysis backends.

Defines the contract for submitting a building strategy to the analysis
service.  The streaming path yields decoded event records as the backend
produces them; the single-shot path returns the whole result at once.
The adapter pattern keeps the runner independent of the transport (HTTP
today, an in-process fake in tests).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from material_mapper.models.mapper import MapperResult


class IMaterialMapperProvider(ABC):
    """Contract for material-mapper analysis backends."""

    @abstractmethod
    def stream_events(self, strategy_description: str) -> AsyncIterator[dict[str, Any]]:
        """Submit *strategy_description* and yield decoded event records.

        Implementations are async generators.  Records are yielded in
        arrival order, unvalidated; closing the generator releases the
        underlying response body.

        Parameters
        ----------
        strategy_description:
            The user's free-text building strategy.

        Raises
        ------
        TransportError
            If the request is rejected, the status is not a success, or
            the body cannot be read.
        """

    @abstractmethod
    async def invoke(self, strategy_description: str) -> MapperResult:
        """Submit *strategy_description* and return the complete result.

        Raises
        ------
        TransportError
            If the request fails or returns a non-success status.
        ProtocolError
            If the response document does not match :class:`MapperResult`.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured for use."""
