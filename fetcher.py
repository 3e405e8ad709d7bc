"""Composite Hacker News lookups built on top of a content API client.

Multi-item lookups run their item fetches concurrently but always return the
items in the order of the ids they were asked for. A failing item fails the
whole lookup and cancels the siblings still in flight.
"""

import asyncio
import logging
from typing import Awaitable, Iterable, List, Optional

from base import HackerNewsAPIBase
from config.settings import HackerNewsConfig
from errors import ToolArgumentError, UpstreamUnavailable
from models import Item


async def gather_ordered(aws: Iterable[Awaitable[Item]]) -> List[Item]:
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        # wait out the cancelled siblings so a second failure is retrieved here
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class StoryFetcher:
    def __init__(self, api: HackerNewsAPIBase, cfg: Optional[HackerNewsConfig] = None):
        self.api = api
        self.cfg = cfg or HackerNewsConfig()
        self.logger = logging.getLogger("app")

    async def fetch_top_story_ids(self, limit: Optional[int] = None) -> List[int]:
        if limit is None:
            limit = self.cfg.default_story_limit
        if limit < 1:
            raise ToolArgumentError("get_top_stories", "limit", "must be at least 1")
        return await self.api.fetch_top_story_ids(limit)

    async def fetch_item(self, item_id: int) -> Item:
        return await self.api.fetch_item(item_id)

    async def fetch_top_stories(self, limit: Optional[int] = None) -> List[Item]:
        ids = await self.fetch_top_story_ids(limit)
        self.logger.debug(f"Fetching {len(ids)} top stories")
        return await gather_ordered(self.api.fetch_item(i) for i in ids)

    async def fetch_story_with_comments(self, story_id: int) -> Item:
        story = await self.api.fetch_item(story_id)
        kids = (story.get("kids") or [])[: self.cfg.max_comments]
        comments = await gather_ordered(self.api.fetch_item(k) for k in kids)
        return {**story, "comments": comments}

    async def fetch_top_story_with_comments(self) -> Item:
        top = await self.fetch_top_stories(limit=1)
        if not top:
            raise UpstreamUnavailable("topstories.json returned no ids", retryable=False)
        return await self.fetch_story_with_comments(top[0]["id"])
