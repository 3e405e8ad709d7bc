from typing import Any, Optional


class HackerNewsAgentError(Exception):
    """Base class for every failure the chat pipeline knows how to name."""


class UpstreamUnavailable(HackerNewsAgentError):
    """Network or transport failure talking to the model or the content API."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ItemNotFound(HackerNewsAgentError):
    def __init__(self, item_id: int):
        super().__init__(f"Hacker News item {item_id} not found")
        self.item_id = item_id


class UnknownTool(HackerNewsAgentError):
    def __init__(self, name: str):
        super().__init__(f"Model requested unknown tool {name!r}")
        self.name = name


class ToolArgumentError(HackerNewsAgentError):
    def __init__(self, tool: str, argument: str, reason: str = "is required"):
        super().__init__(f"Argument {argument!r} of {tool} {reason}")
        self.tool = tool
        self.argument = argument


class ArgumentParseError(HackerNewsAgentError):
    def __init__(self, name: str, raw: Optional[str]):
        super().__init__(f"Could not decode arguments for {name!r}: {raw!r}")
        self.name = name
        self.raw = raw


class NoChoicesError(HackerNewsAgentError):
    """The model answered with an empty `choices` list."""


class RateLimited(HackerNewsAgentError):
    def __init__(self, decision: Any):
        super().__init__("Request limit reached")
        self.decision = decision
