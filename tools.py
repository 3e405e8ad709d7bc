import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from config.settings import HackerNewsConfig
from errors import ToolArgumentError, UnknownTool
from fetcher import StoryFetcher


@dataclass(frozen=True)
class ToolParameter:
    name: str
    type: str
    description: str
    required: bool = False


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: Tuple[ToolParameter, ...] = ()

    def to_function_schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {
                    p.name: {"type": p.type, "description": p.description} for p in self.parameters
                },
                "required": [p.name for p in self.parameters if p.required],
            },
        }


_STORY_ID = ToolParameter("id", "number", "The ID of the story", required=True)

TOOL_SPECS: Tuple[ToolSpec, ...] = (
    ToolSpec(
        name="get_top_stories",
        description="Get the top stories from Hacker News. Also returns the Hacker News URL to each story.",
        parameters=(
            ToolParameter("limit", "number", "The number of stories to return. Defaults to 10."),
        ),
    ),
    ToolSpec(
        name="get_story",
        description="Get a story from Hacker News. Also returns the Hacker News URL to the story.",
        parameters=(_STORY_ID,),
    ),
    ToolSpec(
        name="get_story_with_comments",
        description=(
            "Get a story from Hacker News with comments. "
            "Also returns the Hacker News URL to the story and each comment."
        ),
        parameters=(_STORY_ID,),
    ),
    ToolSpec(
        name="summarize_top_story",
        description=(
            "Summarize the top story from Hacker News, including both the story and its comments. "
            "Also returns the Hacker News URL to the story and each comment."
        ),
    ),
)


def _as_int(tool: str, argument: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ToolArgumentError(tool, argument, "must be a number")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ToolArgumentError(tool, argument, "must be a number") from None
    if not as_float.is_integer():
        raise ToolArgumentError(tool, argument, "must be a whole number")
    return int(as_float)


class ToolCatalog:
    """Fixed set of Hacker News lookups the model may call."""

    def __init__(self, fetcher: StoryFetcher, cfg: Optional[HackerNewsConfig] = None):
        self.fetcher = fetcher
        self.cfg = cfg or HackerNewsConfig()
        self.specs: Mapping[str, ToolSpec] = MappingProxyType({s.name: s for s in TOOL_SPECS})
        self.logger = logging.getLogger("app")

    def functions(self) -> List[Dict[str, Any]]:
        return [spec.to_function_schema() for spec in self.specs.values()]

    def validate(self, name: str, arguments: Dict[str, Any]) -> ToolSpec:
        spec = self.specs.get(name)
        if spec is None:
            raise UnknownTool(name)
        for param in spec.parameters:
            if param.required and arguments.get(param.name) is None:
                raise ToolArgumentError(name, param.name)
        return spec

    async def run_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        self.validate(name, arguments)
        self.logger.debug(f"Running tool {name} with {arguments}", extra={"extra_data": {"tool": name}})

        if name == "get_top_stories":
            limit = arguments.get("limit")
            if limit is None:
                limit = self.cfg.default_story_limit
            limit = _as_int(name, "limit", limit)
            if limit < 1:
                raise ToolArgumentError(name, "limit", "must be at least 1")
            return await self.fetcher.fetch_top_stories(min(limit, self.cfg.max_story_limit))
        elif name == "get_story":
            return await self.fetcher.fetch_item(_as_int(name, "id", arguments["id"]))
        elif name == "get_story_with_comments":
            return await self.fetcher.fetch_story_with_comments(_as_int(name, "id", arguments["id"]))
        elif name == "summarize_top_story":
            return await self.fetcher.fetch_top_story_with_comments()
        raise UnknownTool(name)
