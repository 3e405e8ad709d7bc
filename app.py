import json
import time
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, StreamingResponse
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST, REGISTRY

from agent import HackerNewsAgent
from base import ChatModelBase, HackerNewsAPIBase, RateLimiterBase
from config import Settings, settings as default_settings
from config.settings import LoggingConfig
from errors import HackerNewsAgentError, RateLimited
from fetcher import StoryFetcher
from llm.openai_client import OpenAIChatClient
from models import ChatRequest
from streamer import Pacer
from tools import ToolCatalog
from utils import get_api_class, get_limiter_class

GENERIC_ERROR = "Sorry, something went wrong."
THROTTLED_MESSAGE = "You have reached your request limit for the day."
SOURCE_URL = "https://github.com/steven-tey/chathn"
DEPLOY_URL = "https://vercel.com/templates/next.js/chathn"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "level": record.levelname,
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "msg": record.getMessage(),
            "logger": record.name,
        }
        if hasattr(record, "extra_data"):
            base.update(getattr(record, "extra_data"))
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, default=str)


def setup_logging(cfg: LoggingConfig) -> logging.Logger:
    logger = logging.getLogger("app")
    logger.setLevel(cfg.level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        if cfg.json_logging:
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


logger = logging.getLogger("app")

REQUEST_COUNTER: Optional[Counter] = None
REQUEST_LATENCY: Optional[Histogram] = None
TOOL_COUNTER: Optional[Counter] = None


def init_metrics(registry=REGISTRY) -> None:
    global REQUEST_COUNTER, REQUEST_LATENCY, TOOL_COUNTER
    if REQUEST_COUNTER is None:
        REQUEST_COUNTER = Counter(
            "chat_requests_total",
            "Total /api/chat requests",
            ["mode", "status"],
            registry=registry,
        )
    if REQUEST_LATENCY is None:
        REQUEST_LATENCY = Histogram(
            "chat_request_seconds",
            "Time from request to first streamed byte being ready, in seconds",
            registry=registry,
        )
    if TOOL_COUNTER is None:
        TOOL_COUNTER = Counter(
            "chat_tool_calls_total",
            "Tool calls dispatched on behalf of the model",
            ["tool"],
            registry=registry,
        )


def client_key_for(request: Request, prefix: str) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif request.client:
        ip = request.client.host
    else:
        ip = "anonymous"
    return f"{prefix}_{ip}"


async def check_admission(limiter: RateLimiterBase, client_key: str) -> None:
    decision = await limiter.admit(client_key)
    if not decision.allowed:
        raise RateLimited(decision)


def build_limiter(cfg: Settings) -> RateLimiterBase:
    if cfg.rate_limit_active:
        limiter_cls = get_limiter_class("RedisRateLimiter")
        return limiter_cls(
            url=cfg.redis_url(),
            limit=cfg.rate_limit.limit,
            window_seconds=cfg.rate_limit.window_seconds,
        )
    return get_limiter_class("OpenAdmission")()


class ClosingStreamingResponse(StreamingResponse):
    """Runs `on_close` once the response is over, even if the body was never iterated."""

    def __init__(self, content, on_close: Callable[[], Awaitable[None]], **kwargs):
        super().__init__(content, **kwargs)
        self.on_close = on_close

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.on_close()


async def guard_stream(stream: AsyncIterator[bytes], request_id: str) -> AsyncIterator[bytes]:
    """Headers are already sent once streaming starts, so a failure can only be logged."""
    try:
        async for chunk in stream:
            yield chunk
    except HackerNewsAgentError as e:
        logger.error(
            f"Stream aborted: {e}",
            extra={"extra_data": {"request_id": request_id, "error_kind": type(e).__name__}},
        )
    finally:
        await stream.aclose()


router = APIRouter()


@router.get("/healthz", response_class=PlainTextResponse)
def healthz():
    return "ok"


@router.get("/metrics")
def metrics():
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/github")
def github():
    return RedirectResponse(SOURCE_URL, status_code=308)


@router.get("/deploy")
def deploy():
    return RedirectResponse(DEPLOY_URL, status_code=308)


@router.post("/api/chat")
async def chat(req: ChatRequest, request: Request):
    init_metrics()
    state = request.app.state
    cfg: Settings = state.settings
    request_id = str(uuid.uuid4())
    start = time.time()

    client_key = client_key_for(request, cfg.rate_limit.key_prefix)
    try:
        await check_admission(state.limiter, client_key)
    except RateLimited as e:
        REQUEST_COUNTER.labels(mode="throttled", status="429").inc()
        logger.info(
            "Rate limited",
            extra={"extra_data": {"request_id": request_id, "client_key": client_key, "error_kind": "RateLimited"}},
        )
        return PlainTextResponse(THROTTLED_MESSAGE, status_code=429, headers=e.decision.headers())

    agent = HackerNewsAgent(state.llm, state.catalog, cfg.orchestrator, state.pacer)
    try:
        result = await agent.run(request_id, req.messages)
    except HackerNewsAgentError as e:
        REQUEST_COUNTER.labels(mode="error", status="500").inc()
        logger.error(
            f"Chat failed: {e}",
            extra={"extra_data": {"request_id": request_id, "agent": agent.name, "error_kind": type(e).__name__}},
        )
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})
    except Exception:
        REQUEST_COUNTER.labels(mode="error", status="500").inc()
        logger.exception(
            "Chat error",
            extra={"extra_data": {"request_id": request_id, "agent": agent.name, "error_kind": "Unexpected"}},
        )
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})

    REQUEST_COUNTER.labels(mode=result.mode, status="200").inc()
    REQUEST_LATENCY.observe(time.time() - start)
    if result.tool_call is not None:
        TOOL_COUNTER.labels(tool=result.tool_call.name).inc()
    logger.info(
        "Handled chat",
        extra={"extra_data": {"request_id": request_id, "agent": agent.name, "mode": result.mode}},
    )
    return ClosingStreamingResponse(
        guard_stream(result.stream, request_id),
        on_close=result.aclose,
        media_type="text/plain; charset=utf-8",
    )


def create_app(
    cfg: Optional[Settings] = None,
    llm: Optional[ChatModelBase] = None,
    hn_api: Optional[HackerNewsAPIBase] = None,
    limiter: Optional[RateLimiterBase] = None,
    pacer: Optional[Pacer] = None,
) -> FastAPI:
    """Build the service. Collaborators not passed in are created at startup from `cfg`."""
    cfg = cfg or default_settings
    setup_logging(cfg.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = []
        if app.state.hn_api is None:
            app.state.hn_api = get_api_class(cfg.modules.hn_api_name)(cfg.hn)
            owned.append(app.state.hn_api)
        if app.state.llm is None:
            app.state.llm = OpenAIChatClient(cfg.openai, api_key=cfg.openai_api_key)
            owned.append(app.state.llm)
        if app.state.limiter is None:
            app.state.limiter = build_limiter(cfg)
            owned.append(app.state.limiter)
        app.state.catalog = ToolCatalog(StoryFetcher(app.state.hn_api, cfg.hn), cfg.hn)
        logger.info(
            "Service started",
            extra={"extra_data": {"env": cfg.env, "rate_limited": cfg.rate_limit_active, "hn_api": cfg.modules.hn_api_name}},
        )

        yield

        for resource in owned:
            await resource.aclose()

    app = FastAPI(title="ChatHN", version="1.0.0", lifespan=lifespan)
    app.state.settings = cfg
    app.state.llm = llm
    app.state.hn_api = hn_api
    app.state.limiter = limiter
    app.state.pacer = pacer or Pacer.from_config(cfg.streaming)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
