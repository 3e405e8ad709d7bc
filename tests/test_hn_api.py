import httpx
import pytest

from api.hn_api_firebase import HackerNewsFirebaseClient
from config.settings import HackerNewsConfig
from errors import ItemNotFound, UpstreamUnavailable


HN_BASE = "https://hacker-news.firebaseio.com/v0"


@pytest.fixture
def client():
    return HackerNewsFirebaseClient(HackerNewsConfig(api_base_url=HN_BASE, backoff_factor=0, max_retries=3))


@pytest.mark.asyncio
async def test_top_story_ids_are_truncated_in_order(httpx_mock, client):
    httpx_mock.add_response(method="GET", url=f"{HN_BASE}/topstories.json", json=[39, 12, 7, 3, 1])

    assert await client.fetch_top_story_ids(3) == [39, 12, 7]


@pytest.mark.asyncio
async def test_top_story_ids_shorter_than_limit(httpx_mock, client):
    httpx_mock.add_response(method="GET", url=f"{HN_BASE}/topstories.json", json=[8, 9])

    assert await client.fetch_top_story_ids(10) == [8, 9]


@pytest.mark.asyncio
async def test_fetch_item_adds_permalink(httpx_mock, client):
    payload = {"id": 8863, "type": "story", "by": "dhouston", "title": "My YC app: Dropbox", "kids": [9224, 8917]}
    httpx_mock.add_response(method="GET", url=f"{HN_BASE}/item/8863.json", json=payload)

    item = await client.fetch_item(8863)
    assert item == {**payload, "permalink": "https://news.ycombinator.com/item?id=8863"}


@pytest.mark.asyncio
async def test_null_item_is_not_found(httpx_mock, client):
    httpx_mock.add_response(method="GET", url=f"{HN_BASE}/item/999999999.json", content=b"null")

    with pytest.raises(ItemNotFound) as exc_info:
        await client.fetch_item(999999999)
    assert exc_info.value.item_id == 999999999


@pytest.mark.asyncio
async def test_404_item_is_not_found(httpx_mock, client):
    httpx_mock.add_response(method="GET", url=f"{HN_BASE}/item/5.json", status_code=404)

    with pytest.raises(ItemNotFound):
        await client.fetch_item(5)


@pytest.mark.asyncio
async def test_server_error_is_retried(httpx_mock, client):
    url = f"{HN_BASE}/item/42.json"
    httpx_mock.add_response(method="GET", url=url, status_code=503)
    httpx_mock.add_response(method="GET", url=url, json={"id": 42, "type": "comment", "text": "hi"})

    item = await client.fetch_item(42)
    assert item["text"] == "hi"
    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_transport_error_gives_up_after_max_retries(httpx_mock, client):
    url = f"{HN_BASE}/topstories.json"
    for _ in range(3):
        httpx_mock.add_exception(httpx.ConnectError("boom"), method="GET", url=url)

    with pytest.raises(UpstreamUnavailable):
        await client.fetch_top_story_ids()
    assert len(httpx_mock.get_requests()) == 3


@pytest.mark.asyncio
async def test_malformed_listing_is_not_retried(httpx_mock, client):
    httpx_mock.add_response(method="GET", url=f"{HN_BASE}/topstories.json", json={"error": "nope"})

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await client.fetch_top_story_ids()
    assert exc_info.value.retryable is False
    assert len(httpx_mock.get_requests()) == 1
