"""
Error taxonomy for the conversation core.

- Configuration errors: invalid settings, or no provider/model selected.
- Retrieval errors: the knowledge store could not answer.

Provider errors are whatever the model provider raises; they propagate
unchanged out of the send pipeline.
"""

from __future__ import annotations


class CompanionError(Exception):
    """Base class for errors raised by this package."""


class ConfigError(CompanionError):
    """A configuration value is missing or out of range."""


class ProviderConfigurationError(CompanionError):
    """No active model or provider is available for a turn."""


class RetrievalError(CompanionError):
    """The retrieval store failed to answer a query."""
