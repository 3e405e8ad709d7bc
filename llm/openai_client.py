import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

import openai
from openai import AsyncOpenAI

from base import ChatModelBase
from config.settings import OpenAIConfig
from errors import NoChoicesError, UpstreamUnavailable
from models import FunctionCall, FunctionCallMessage, TextMessage, to_provider_dict


class DeltaStream:
    """Text deltas of one streamed completion.

    `aclose()` releases the HTTP response whether or not iteration ever began.
    """

    def __init__(self, stream):
        self._stream = stream
        self._chunks = self._deltas()

    def __aiter__(self) -> "DeltaStream":
        return self

    async def __anext__(self) -> str:
        return await self._chunks.__anext__()

    async def _deltas(self) -> AsyncIterator[str]:
        try:
            async for chunk in self._stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.APIError as e:
            raise UpstreamUnavailable(f"token stream broke: {e}", retryable=False) from e
        finally:
            await self._stream.close()

    async def aclose(self) -> None:
        await self._chunks.aclose()
        await self._stream.close()


class OpenAIChatClient(ChatModelBase):
    def __init__(self, cfg: OpenAIConfig, api_key: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        self.cfg = cfg
        # max_retries=0: a decision call is never replayed behind our back
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            timeout=cfg.request_timeout_seconds,
            max_retries=0,
        )
        self.logger = logging.getLogger("app")

    @staticmethod
    def _payload(messages: Sequence[Any]) -> List[Dict[str, Any]]:
        return [to_provider_dict(m) for m in messages]

    async def complete(
        self, messages: Sequence[Any], functions: List[Dict[str, Any]]
    ) -> Union[TextMessage, FunctionCallMessage]:
        try:
            resp = await self.client.chat.completions.create(
                model=self.cfg.decision_model,
                temperature=self.cfg.temperature,
                messages=self._payload(messages),
                functions=functions,
                function_call="auto",
            )
        except openai.APIError as e:
            raise UpstreamUnavailable(f"chat completion failed: {e}", retryable=False) from e

        if not resp.choices:
            raise NoChoicesError(f"{self.cfg.decision_model} returned no choices")
        message = resp.choices[0].message
        if message.function_call is not None:
            return FunctionCallMessage(
                content=message.content,
                function_call=FunctionCall(
                    name=message.function_call.name,
                    arguments=message.function_call.arguments or "",
                ),
            )
        return TextMessage(role="assistant", content=message.content or "")

    async def complete_streaming(self, messages: Sequence[Any]) -> DeltaStream:
        try:
            stream = await self.client.chat.completions.create(
                model=self.cfg.answer_model,
                temperature=self.cfg.temperature,
                messages=self._payload(messages),
                stream=True,
            )
        except openai.APIError as e:
            raise UpstreamUnavailable(f"streaming completion failed: {e}", retryable=False) from e
        return DeltaStream(stream)

    async def aclose(self) -> None:
        await self.client.close()
