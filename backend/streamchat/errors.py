class ConfigurationError(RuntimeError):
    """A required setting is missing at process start."""


class ProviderError(RuntimeError):
    """The model provider call failed (auth, rate limit, connectivity)."""


class ToolExecutionError(ValueError):
    """A tool rejected its input or failed while running.

    The message is shown to the user as the tool part's ``errorText``.
    """


class ChatStreamError(RuntimeError):
    """The chat endpoint failed or sent an error event mid-stream."""
