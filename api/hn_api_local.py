import time
from typing import Any, Dict, List, Optional

from base import HackerNewsAPIBase
from config.settings import HackerNewsConfig
from errors import ItemNotFound
from models import Item
from utils import permalink


def _seed_items() -> Dict[int, Dict[str, Any]]:
    now = int(time.time())
    items: Dict[int, Dict[str, Any]] = {
        1001: {
            "id": 1001,
            "type": "story",
            "by": "pg",
            "title": "Show HN: A tiny SQLite-backed job queue",
            "url": "https://example.com/queue",
            "score": 312,
            "time": now - 3600,
            "descendants": 3,
            "kids": [2001, 2002, 2003],
        },
        1002: {
            "id": 1002,
            "type": "story",
            "by": "dang",
            "title": "Ask HN: What are you working on this month?",
            "text": "Share what you're building.",
            "score": 145,
            "time": now - 7200,
            "descendants": 1,
            "kids": [2004],
        },
        1003: {
            "id": 1003,
            "type": "story",
            "by": "tptacek",
            "title": "Notes on certificate transparency logs",
            "url": "https://example.com/ct",
            "score": 98,
            "time": now - 10800,
            "descendants": 0,
        },
    }
    comments = [
        (2001, 1001, "sqlite_fan", "We run something like this in production, works great."),
        (2002, 1001, "skeptic", "How does it handle crashes mid-job?"),
        (2003, 1001, "pg", "Leases with a visibility timeout."),
        (2004, 1002, "builder", "A static site generator for recipes."),
    ]
    for cid, parent, author, text in comments:
        items[cid] = {"id": cid, "type": "comment", "by": author, "parent": parent, "text": text, "time": now - 600}
    return items


class HackerNewsLocalClient(HackerNewsAPIBase):
    """A local mock."""
    def __init__(
        self,
        cfg: Optional[HackerNewsConfig] = None,
        items: Optional[Dict[int, Dict[str, Any]]] = None,
        top_story_ids: Optional[List[int]] = None,
        record_requests: bool = False,
    ):
        self.cfg = cfg or HackerNewsConfig()
        self._items = items if items is not None else _seed_items()
        if top_story_ids is None:
            top_story_ids = [i for i, item in self._items.items() if item.get("type") == "story"]
        self._top_story_ids = list(top_story_ids)
        # ids asked for, in order; only kept when record_requests is set
        self.record_requests = record_requests
        self.requested: List[Any] = []

    def _record(self, what: Any) -> None:
        if self.record_requests:
            self.requested.append(what)

    async def fetch_top_story_ids(self, limit: int = 10) -> List[int]:
        self._record("topstories")
        return self._top_story_ids[:limit]

    async def fetch_item(self, item_id: int) -> Item:
        self._record(item_id)
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return {**item, "permalink": permalink(self.cfg.permalink_base_url, item_id)}
