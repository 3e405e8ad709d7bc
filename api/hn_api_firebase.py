import logging
from typing import Any, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from base import HackerNewsAPIBase
from config.settings import HackerNewsConfig
from errors import ItemNotFound, UpstreamUnavailable
from models import Item
from utils import permalink


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamUnavailable) and exc.retryable


class HackerNewsFirebaseClient(HackerNewsAPIBase):
    def __init__(self, cfg: Optional[HackerNewsConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.cfg = cfg or HackerNewsConfig()
        self.base = self.cfg.api_base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=self.cfg.timeout_seconds)
        self.logger = logging.getLogger("app")

    def _url(self, path: str) -> str:
        return f"{self.base}{path}"

    def _log_retry(self, retry_state) -> None:
        exc = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self.logger.warning(
            f"Attempt {retry_state.attempt_number} failed: {exc}. Retrying in {delay:.1f}s...",
            extra={"extra_data": {"error_kind": type(exc).__name__}},
        )

    async def _request(self, path: str) -> Any:
        try:
            resp = await self.client.get(self._url(path))
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"GET {path} failed: {e}") from e
        if resp.status_code == 404:
            return None
        if resp.status_code >= 500:
            raise UpstreamUnavailable(f"GET {path} returned {resp.status_code}")
        if resp.status_code >= 400:
            raise UpstreamUnavailable(f"GET {path} returned {resp.status_code}", retryable=False)
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"GET {path} returned malformed JSON", retryable=False) from e

    async def _get_json(self, path: str) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.cfg.max_retries)),
            wait=wait_exponential(multiplier=self.cfg.backoff_factor, max=self.cfg.max_backoff_seconds),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._request(path)

    async def fetch_top_story_ids(self, limit: int = 10) -> List[int]:
        ids = await self._get_json("/topstories.json")
        if not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
            raise UpstreamUnavailable("topstories.json did not return a list of ids", retryable=False)
        return ids[:limit]

    async def fetch_item(self, item_id: int) -> Item:
        data = await self._get_json(f"/item/{item_id}.json")
        if data is None:
            # HN answers `null` with a 200 for ids that don't exist
            raise ItemNotFound(item_id)
        if not isinstance(data, dict):
            raise UpstreamUnavailable(f"item {item_id} is not a JSON object", retryable=False)
        return {**data, "permalink": permalink(self.cfg.permalink_base_url, item_id)}

    async def aclose(self) -> None:
        await self.client.aclose()
