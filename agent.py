import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

from base import ChatModelBase
from config.settings import OrchestratorConfig
from models import FunctionCallMessage, FunctionResultMessage, Message, ToolCall
from streamer import Pacer, split_words, stream_live, stream_words
from tools import ToolCatalog

TRUNCATION_MARKER = "...[truncated]"


class TurnState(str, Enum):
    AWAITING_INITIAL_DECISION = "awaiting_initial_decision"
    DISPATCHING = "dispatching"
    AWAITING_FINAL_ANSWER = "awaiting_final_answer"
    DIRECT_ANSWER = "direct_answer"
    DONE = "done"


@dataclass
class TurnResult:
    mode: str  # "tool" or "direct"
    stream: AsyncIterator[bytes]
    tool_call: Optional[ToolCall] = None
    conversation: List[Any] = field(default_factory=list)
    source: Optional[Any] = None  # model delta stream behind `stream`, if any

    async def aclose(self) -> None:
        await self.stream.aclose()
        if self.source is not None:
            await self.source.aclose()


def serialize_tool_result(result: Any, max_chars: int = 0) -> Tuple[str, bool]:
    text = json.dumps(result, ensure_ascii=False, default=str)
    if max_chars and len(text) > max_chars:
        return text[:max_chars] + TRUNCATION_MARKER, True
    return text, False


class Agent:
    name = "Agent"

    def __init__(self):
        self.state = TurnState.AWAITING_INITIAL_DECISION
        self.logger = logging.getLogger("app")

    def log(self, request_id: str, msg: str, level: str = "info", **fields: Any):
        extra = {"extra_data": {"request_id": request_id, "agent": self.name, "state": self.state.value, **fields}}
        getattr(self.logger, level)(msg, extra=extra)

    def transition(self, request_id: str, state: TurnState) -> None:
        self.log(request_id, f"{self.state.value} -> {state.value}", level="debug")
        self.state = state


class HackerNewsAgent(Agent):
    """Answers one chat turn, calling at most one Hacker News tool on the way.

    The model first sees the conversation plus the tool catalog and decides
    whether a tool is needed. With a tool call, the tool runs, its JSON result
    is appended after the assistant's call message and the model is asked
    again, this time streaming and without tools. Without one, the first
    answer is replayed word by word.
    """

    name = "HackerNewsAgent"

    def __init__(
        self,
        llm: ChatModelBase,
        catalog: ToolCatalog,
        cfg: Optional[OrchestratorConfig] = None,
        pacer: Optional[Pacer] = None,
    ):
        super().__init__()
        self.llm = llm
        self.catalog = catalog
        self.cfg = cfg or OrchestratorConfig()
        self.pacer = pacer or Pacer()

    async def run(self, request_id: str, messages: Sequence[Message]) -> TurnResult:
        self.log(request_id, f"Deciding on {len(messages)} messages", level="debug")
        candidate = await self.llm.complete(messages, self.catalog.functions())

        if isinstance(candidate, FunctionCallMessage):
            return await self._dispatch(request_id, messages, candidate)
        return self._direct_answer(request_id, list(messages), candidate.content)

    async def _dispatch(
        self, request_id: str, messages: Sequence[Message], candidate: FunctionCallMessage
    ) -> TurnResult:
        self.transition(request_id, TurnState.DISPATCHING)
        tool_call = ToolCall.from_function_call(candidate.function_call)
        self.log(request_id, f"Calling tool {tool_call.name}", tool=tool_call.name, arguments=tool_call.arguments)

        result = await self.catalog.run_tool(tool_call.name, tool_call.arguments)
        content, truncated = serialize_tool_result(result, self.cfg.max_tool_result_chars)
        if truncated:
            self.log(
                request_id,
                f"Tool result truncated to {self.cfg.max_tool_result_chars} chars",
                level="warning",
                tool=tool_call.name,
            )

        conversation = [
            *messages,
            candidate,
            FunctionResultMessage(name=candidate.function_call.name, content=content),
        ]

        self.transition(request_id, TurnState.AWAITING_FINAL_ANSWER)
        deltas = await self.llm.complete_streaming(conversation)
        return TurnResult(
            mode="tool",
            stream=self._finish(request_id, stream_live(deltas)),
            tool_call=tool_call,
            conversation=conversation,
            source=deltas,
        )

    def _direct_answer(self, request_id: str, conversation: List[Any], content: Optional[str]) -> TurnResult:
        self.transition(request_id, TurnState.DIRECT_ANSWER)
        words = split_words(content)
        self.log(request_id, f"Answering directly with {len(words)} words")
        return TurnResult(
            mode="direct",
            stream=self._finish(request_id, stream_words(words, self.pacer)),
            conversation=conversation,
        )

    async def _finish(self, request_id: str, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            await chunks.aclose()
            self.transition(request_id, TurnState.DONE)
