"""
Tests for the chat-completions client.
"""

import asyncio
import doctest
import json

import httpx
import pytest

import you2.llm as llm
from you2.config import AISettings
from you2.tree import empty_forest

SETTINGS = AISettings(api_key="sk-test", model="edit-model", chat_model="chat-model", base_url="https://llm.test/v1")


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def run_edit(handler, settings=SETTINGS, text="add boat"):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await llm.ask_ai_to_edit(empty_forest(), text, settings, client=client)

    return asyncio.run(scenario())


@pytest.mark.unit
def test_ask_ai_to_edit_posts_chat_completion():
    """
    Ensure the request targets chat completions with auth and model.

    Returns
    -------
    None
        This test asserts request construction and parsing.
    """
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        content = '```json\n[{"action": "add", "type": "thread", "title": "Boat"}]\n```'
        return httpx.Response(200, json=completion(content))

    instructions = run_edit(handler)

    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "edit-model"
    assert seen["body"]["messages"][0]["role"] == "system"
    assert "add boat" in seen["body"]["messages"][1]["content"]
    assert [item.title for item in instructions] == ["Boat"]


@pytest.mark.parametrize(
    "content",
    ["not json", '{"action": "add", "title": "Boat"}', "", '[1, "two", {"action": "nope"}]'],
)
@pytest.mark.unit
def test_malformed_content_yields_no_instructions(content):
    """
    Ensure non-JSON, non-array or junk replies produce nothing.

    Parameters
    ----------
    content : str
        Message content returned by the model.

    Returns
    -------
    None
        This test asserts defensive parsing.
    """
    assert run_edit(lambda request: httpx.Response(200, json=completion(content))) == []


@pytest.mark.unit
def test_http_error_yields_no_instructions(capsys):
    """
    Ensure HTTP failures are reported on stderr and produce nothing.

    Returns
    -------
    None
        This test asserts HTTP error handling.
    """
    assert run_edit(lambda request: httpx.Response(500, json={"error": "boom"})) == []
    assert "you2: model request failed with HTTP 500" in capsys.readouterr().err


@pytest.mark.unit
def test_transport_error_yields_no_instructions(capsys):
    """
    Ensure connection failures are reported and produce nothing.

    Returns
    -------
    None
        This test asserts network error handling.
    """

    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    assert run_edit(handler) == []
    assert "you2: model request failed" in capsys.readouterr().err


@pytest.mark.unit
def test_non_json_body_and_odd_shape(capsys):
    """
    Ensure a non-JSON body or a payload without choices produces nothing.

    Returns
    -------
    None
        This test asserts response shape handling.
    """
    assert run_edit(lambda request: httpx.Response(200, text="<html>")) == []
    assert run_edit(lambda request: httpx.Response(200, json={"choices": []})) == []
    assert "not JSON" in capsys.readouterr().err


@pytest.mark.unit
def test_missing_api_key_skips_request(capsys):
    """
    Ensure no request is sent without an API key.

    Returns
    -------
    None
        This test asserts the missing-key path.
    """

    def handler(request):
        raise AssertionError("request should not be sent")

    assert run_edit(handler, settings=AISettings()) == []
    assert "no API key" in capsys.readouterr().err


@pytest.mark.unit
def test_chat_returns_reply_and_suggestions():
    """
    Ensure chat uses the chat model and returns unapplied suggestions.

    Returns
    -------
    None
        This test asserts chat parsing.
    """
    seen = {}
    reply = {
        "reply": "Start with the sink.",
        "task_instructions": [
            {"action": "add", "type": "step", "title": "Sink", "parent_title": "Boat"},
            {"action": "fly"},
        ],
    }

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion(json.dumps(reply)))

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await llm.chat(
                empty_forest(),
                [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
                "the boat is a mess",
                SETTINGS,
                client=client,
            )

    result = asyncio.run(scenario())

    assert seen["body"]["model"] == "chat-model"
    assert "ASSISTANT: hello" in seen["body"]["messages"][1]["content"]
    assert result.reply == "Start with the sink."
    assert [(item.type, item.title, item.parent_title) for item in result.task_instructions] == [
        ("step", "Sink", "Boat")
    ]


@pytest.mark.unit
def test_chat_without_key_still_replies():
    """
    Ensure chat degrades to a neutral reply without a key.

    Returns
    -------
    None
        This test asserts chat degradation.
    """
    result = asyncio.run(llm.chat(empty_forest(), [], "hello", AISettings()))

    assert result.reply
    assert result.task_instructions == []


@pytest.mark.unit
def test_llm_doctest_examples():
    """
    Run doctest examples embedded in the client helpers.

    Returns
    -------
    None
        This test asserts doctest coverage for the client helpers.
    """
    results = doctest.testmod(llm)
    assert results.failed == 0
