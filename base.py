from abc import ABC, abstractmethod
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Sequence,
    Union,
)

from models import AdmissionDecision, FunctionCallMessage, Item, TextMessage


class HackerNewsAPIBase(ABC):

    @abstractmethod
    async def fetch_top_story_ids(self, limit: int = 10) -> List[int]:
        """Top story ids, best first"""

    @abstractmethod
    async def fetch_item(self, item_id: int) -> Item:
        """Story or comment record with its permalink"""

    async def aclose(self) -> None:
        """Release network resources"""


class ChatModelBase(ABC):

    @abstractmethod
    async def complete(
        self, messages: Sequence[Any], functions: List[Dict[str, Any]]
    ) -> Union[TextMessage, FunctionCallMessage]:
        """One assistant message; the model decides whether to call a function"""

    @abstractmethod
    async def complete_streaming(self, messages: Sequence[Any]) -> AsyncIterator[str]:
        """Open a token stream and return its text deltas.

        The returned iterator has `aclose()`, which releases the stream even if
        iteration never started.
        """

    async def aclose(self) -> None:
        """Release network resources"""


class RateLimiterBase(ABC):

    @abstractmethod
    async def admit(self, client_key: str) -> AdmissionDecision:
        """Count one request for client_key and decide whether it may proceed"""

    async def aclose(self) -> None:
        """Release store connections"""
