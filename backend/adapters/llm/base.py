"""
Model provider contract.

Purpose:
- Define the interface for streaming chat completions.
- Keep hook firing, history mutation and parsing OUT of the provider.

Rules:
- This file contains NO logic.
- No retries.
- No text parsing.
- No knowledge of hooks, history or speech.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Mapping

from orchestrator.events import StreamEvent


class ModelProvider(ABC):
    """
    Abstract base class for streaming model providers.

    The provider is a *dumb pipe*:
    messages -> vendor -> stream events.
    """

    name: str = "provider"

    @abstractmethod
    def stream(
        self,
        *,
        model: str,
        messages: list[dict[str, Any]],
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream one completion.

        Contract:
        - Yields zero or more TextDelta / ToolCall / ToolResult events.
        - Yields exactly one Finish event last on success.
        - Raises on transport or vendor failure; never retries internally.
        - TextDelta events carry incremental deltas, not full snapshots.

        Args:
            model:
                Model identifier.
            messages:
                Provider-ready history snapshot. Immutable from the
                provider's perspective.
            headers:
                Extra request headers from provider configuration.
        """
        raise NotImplementedError
