import json

import pytest

from agent import TRUNCATION_MARKER, HackerNewsAgent, TurnState
from config.settings import HackerNewsConfig, OrchestratorConfig
from conftest import FakeChatModel, conversation, function_call, text_reply
from errors import ArgumentParseError, NoChoicesError, ToolArgumentError, UnknownTool
from fetcher import StoryFetcher
from models import FunctionResultMessage
from tools import ToolCatalog


def make_agent(llm, hn_api, pacer, cfg=None):
    catalog = ToolCatalog(StoryFetcher(hn_api), HackerNewsConfig())
    return HackerNewsAgent(llm, catalog, cfg or OrchestratorConfig(), pacer)


async def drain(result):
    return b"".join([chunk async for chunk in result.stream])


@pytest.mark.asyncio
async def test_direct_answer_is_replayed_word_by_word(hn_api, instant_pacer):
    answer = "Hi! Ask me about\nthe front page of Hacker News."
    llm = FakeChatModel(text_reply(answer))
    agent = make_agent(llm, hn_api, instant_pacer)

    result = await agent.run("r1", conversation("hello"))
    body = await drain(result)

    assert result.mode == "direct"
    assert result.tool_call is None
    assert body.decode("utf-8") == answer + " "
    assert llm.stream_calls == []
    assert hn_api.requested == []
    assert agent.state is TurnState.DONE


@pytest.mark.asyncio
async def test_decision_call_offers_the_catalog(hn_api, instant_pacer):
    llm = FakeChatModel(text_reply("ok"))
    messages = conversation("hello")

    await drain(await make_agent(llm, hn_api, instant_pacer).run("r1", messages))

    (call,) = llm.complete_calls
    assert call["messages"] == list(messages)
    assert {f["name"] for f in call["functions"]} == {
        "get_top_stories",
        "get_story",
        "get_story_with_comments",
        "summarize_top_story",
    }


@pytest.mark.asyncio
async def test_tool_result_follows_the_call_in_resubmitted_conversation(hn_api, instant_pacer):
    candidate = function_call("get_story", '{"id": 1002}')
    llm = FakeChatModel(candidate, deltas=["Ask HN ", "thread."])
    messages = conversation("earlier question", "what is story 1002?")

    result = await make_agent(llm, hn_api, instant_pacer).run("r1", messages)
    body = await drain(result)

    (resubmitted,) = llm.stream_calls
    assert resubmitted == result.conversation
    assert resubmitted[:2] == list(messages)
    assert resubmitted[2] is candidate
    assert isinstance(resubmitted[3], FunctionResultMessage)
    assert resubmitted[3].name == "get_story"
    assert len(resubmitted) == 4
    assert json.loads(resubmitted[3].content)["id"] == 1002
    assert body == b"Ask HN thread."
    assert result.mode == "tool"
    assert result.tool_call.arguments == {"id": 1002}


@pytest.mark.asyncio
async def test_summarize_top_story_scenario(hn_api, instant_pacer):
    llm = FakeChatModel(function_call("summarize_top_story", ""))

    result = await make_agent(llm, hn_api, instant_pacer).run("r1", conversation("what's the top story on HN?"))
    body = await drain(result)

    assert hn_api.requested == ["topstories", 1001, 1001, 2001, 2002, 2003]
    payload = json.loads(result.conversation[-1].content)
    assert [c["id"] for c in payload["comments"]] == [2001, 2002, 2003]
    assert body
    assert llm.stream_closed


@pytest.mark.asyncio
async def test_malformed_arguments_fail_before_dispatch(hn_api, instant_pacer):
    llm = FakeChatModel(function_call("get_story", '{"id": 10'))

    with pytest.raises(ArgumentParseError):
        await make_agent(llm, hn_api, instant_pacer).run("r1", conversation("story 10?"))
    assert hn_api.requested == []
    assert llm.stream_calls == []


@pytest.mark.asyncio
async def test_non_object_arguments_are_a_parse_error(hn_api, instant_pacer):
    llm = FakeChatModel(function_call("get_story", "[1002]"))

    with pytest.raises(ArgumentParseError):
        await make_agent(llm, hn_api, instant_pacer).run("r1", conversation("story?"))


@pytest.mark.asyncio
async def test_unknown_tool_fails_the_request(hn_api, instant_pacer):
    llm = FakeChatModel(function_call("post_comment", '{"text": "first"}'))

    with pytest.raises(UnknownTool):
        await make_agent(llm, hn_api, instant_pacer).run("r1", conversation("comment for me"))
    assert hn_api.requested == []
    assert llm.stream_calls == []


@pytest.mark.asyncio
async def test_missing_required_argument_fails_at_dispatch(hn_api, instant_pacer):
    llm = FakeChatModel(function_call("get_story_with_comments", "{}"))

    with pytest.raises(ToolArgumentError):
        await make_agent(llm, hn_api, instant_pacer).run("r1", conversation("comments?"))


@pytest.mark.asyncio
async def test_no_choices_propagates(hn_api, instant_pacer):
    llm = FakeChatModel(NoChoicesError("empty"))

    with pytest.raises(NoChoicesError):
        await make_agent(llm, hn_api, instant_pacer).run("r1", conversation("hello"))


@pytest.mark.asyncio
async def test_oversized_tool_result_is_truncated(hn_api, instant_pacer):
    llm = FakeChatModel(function_call("get_top_stories", '{"limit": 3}'))
    agent = make_agent(llm, hn_api, instant_pacer, OrchestratorConfig(max_tool_result_chars=50))

    result = await agent.run("r1", conversation("top 3"))
    await drain(result)

    content = result.conversation[-1].content
    assert content.endswith(TRUNCATION_MARKER)
    assert len(content) == 50 + len(TRUNCATION_MARKER)


@pytest.mark.asyncio
async def test_leaving_early_closes_the_model_stream(hn_api, instant_pacer):
    llm = FakeChatModel(function_call("get_story", '{"id": 1001}'), deltas=[f"t{i} " for i in range(50)])
    agent = make_agent(llm, hn_api, instant_pacer)

    result = await agent.run("r1", conversation("story 1001"))
    first = await result.stream.__anext__()
    await result.stream.aclose()

    assert first == b"t0 "
    assert llm.stream_closed
    assert agent.state is TurnState.DONE


@pytest.mark.asyncio
async def test_closing_an_unread_result_closes_the_model_stream(hn_api, instant_pacer):
    llm = FakeChatModel(function_call("get_story", '{"id": 1001}'))
    agent = make_agent(llm, hn_api, instant_pacer)

    result = await agent.run("r1", conversation("story 1001"))
    await result.aclose()

    assert llm.stream_closed
