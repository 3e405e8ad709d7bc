"""Turn model output into a lazy stream of UTF-8 byte chunks.

Live mode forwards the model's text deltas as they arrive. Synthetic mode
re-emits an already complete answer word by word, pausing a random
10-30ms between words so both paths look the same to the client.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence

from config.settings import StreamingConfig


@dataclass
class Pacer:
    min_delay: float = 0.010
    max_delay: float = 0.030
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_config(cls, cfg: StreamingConfig) -> "Pacer":
        return cls(min_delay=cfg.min_delay_seconds, max_delay=cfg.max_delay_seconds)

    def next_delay(self) -> float:
        # uniform over [min_delay, max_delay)
        return self.min_delay + self.rng.random() * (self.max_delay - self.min_delay)

    async def pause(self) -> None:
        await self.sleep(self.next_delay())


def split_words(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return text.split(" ")


async def stream_live(deltas: AsyncIterator[str]) -> AsyncIterator[bytes]:
    try:
        async for delta in deltas:
            if delta:
                yield delta.encode("utf-8")
    finally:
        aclose = getattr(deltas, "aclose", None)
        if aclose is not None:
            await aclose()


async def stream_words(words: Sequence[str], pacer: Optional[Pacer] = None) -> AsyncIterator[bytes]:
    pacer = pacer or Pacer()
    last = len(words) - 1
    for i, word in enumerate(words):
        yield f"{word} ".encode("utf-8")
        if i < last:
            await pacer.pause()
