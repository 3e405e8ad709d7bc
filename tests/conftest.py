import asyncio
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from api.hn_api_local import HackerNewsLocalClient
from app import create_app
from base import ChatModelBase
from config import Settings
from limiter.memory_impl import OpenAdmission
from models import ChatRequest, FunctionCall, FunctionCallMessage, TextMessage
from streamer import Pacer


class FakeChatModel(ChatModelBase):
    """Scripted stand-in for the chat-completions API."""

    def __init__(self, decision: Any, deltas=("The top story ", "is about ", "job queues.")):
        self.decision = decision
        self.deltas = list(deltas)
        self.complete_calls: List[Dict[str, Any]] = []
        self.stream_calls: List[List[Any]] = []
        self.stream_closed = False

    async def complete(self, messages, functions):
        self.complete_calls.append({"messages": list(messages), "functions": functions})
        if isinstance(self.decision, Exception):
            raise self.decision
        return self.decision

    async def complete_streaming(self, messages):
        self.stream_calls.append(list(messages))
        return ScriptedDeltas(self)


class ScriptedDeltas:
    """Delta stream that reports `aclose()` back to its model, iterated or not."""

    def __init__(self, model: FakeChatModel):
        self.model = model
        self._pending = list(model.deltas)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if not self._pending:
            raise StopAsyncIteration
        await asyncio.sleep(0)
        return self._pending.pop(0)

    async def aclose(self) -> None:
        self.model.stream_closed = True


def function_call(name: str, arguments: str = "{}") -> FunctionCallMessage:
    return FunctionCallMessage(function_call=FunctionCall(name=name, arguments=arguments))


def text_reply(content: Optional[str]) -> TextMessage:
    return TextMessage(role="assistant", content=content or "")


def conversation(*contents: str):
    return ChatRequest(messages=[{"role": "user", "content": c} for c in contents]).messages


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def instant_pacer():
    return Pacer(sleep=_no_sleep)


@pytest.fixture
def hn_api():
    return HackerNewsLocalClient(record_requests=True)


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, env="dev", openai_api_key="sk-test")


@pytest.fixture
def make_client(hn_api, instant_pacer, test_settings):
    def _make(llm: ChatModelBase, limiter=None, cfg: Optional[Settings] = None) -> TestClient:
        app = create_app(
            cfg or test_settings,
            llm=llm,
            hn_api=hn_api,
            limiter=limiter or OpenAdmission(),
            pacer=instant_pacer,
        )
        return TestClient(app)

    return _make
