"""
Tests for the request pipeline and in-flight guard.
"""

import asyncio
import doctest
from datetime import datetime

import pytest

import you2.assistant as assistant
from you2.adapter import HighLevelInstruction
from you2.dates import from_timestamp
from you2.llm import parse_edit_response
from you2.tree import empty_forest

MONDAY = datetime(2026, 10, 19, 9, 0)


def boat_forest():
    forest = empty_forest()
    forest["execution"] = [{"text": "Boat", "completed": False, "steps": []}]
    return forest


async def failing_ask(forest, text):
    raise AssertionError("model should not be called")


@pytest.mark.unit
def test_shortcut_bypasses_model():
    """
    Ensure shortcut commands never reach the model.

    Returns
    -------
    None
        This test asserts shortcut precedence.
    """
    result = asyncio.run(assistant.handle_request(boat_forest(), "delete boat", failing_ask))

    assert result.source == "shortcut"
    assert result.changed == 1
    assert result.message == "changed 1 item(s)"
    assert result.forest["execution"] == []


@pytest.mark.unit
def test_shortcut_miss_still_bypasses_model():
    """
    Ensure a shortcut with an unknown title reports no changes locally.

    Returns
    -------
    None
        This test asserts unmatched shortcut titles.
    """
    result = asyncio.run(assistant.handle_request(boat_forest(), "delete garden", failing_ask))

    assert result.source == "shortcut"
    assert result.message == "no changes"


@pytest.mark.unit
def test_malformed_model_reply_reports_no_changes():
    """
    Ensure a "not json" reply yields no changes and no exception.

    Returns
    -------
    None
        This test asserts malformed reply tolerance.
    """

    async def ask(forest, text):
        return parse_edit_response("not json")

    result = asyncio.run(assistant.handle_request(boat_forest(), "add a garden", ask))

    assert result.changed == 0
    assert result.message == "no changes"
    assert result.forest == boat_forest()


@pytest.mark.unit
def test_model_instructions_get_inferred_target():
    """
    Ensure added nodes inherit the target inferred from the request.

    Returns
    -------
    None
        This test asserts the fallback target on model edits.
    """

    async def ask(forest, text):
        return [
            HighLevelInstruction("add", "step", "Sink", parent_title="Boat"),
            HighLevelInstruction("add", "substep", "Buy connector", parent_title="Sink"),
        ]

    result = asyncio.run(
        assistant.handle_request(boat_forest(), "sink and connector by thursday", ask, now=MONDAY)
    )
    sink = result.forest["execution"][0]["steps"][0]

    assert result.source == "ai"
    assert result.message == "changed 2 item(s)"
    assert from_timestamp(sink["targetDate"]) == datetime(2026, 10, 22)
    assert from_timestamp(sink["steps"][0]["targetDate"]) == datetime(2026, 10, 22)


@pytest.mark.unit
def test_busy_guard_rejects_second_request():
    """
    Ensure a request arriving while another is in flight is rejected.

    Returns
    -------
    None
        This test asserts the single-slot guard.
    """
    guard = assistant.InFlightGuard()
    calls = []

    async def scenario():
        gate = asyncio.Event()

        async def slow_ask(forest, text):
            calls.append(text)
            await gate.wait()
            return [{"action": "add", "title": "Garden"}]

        first = asyncio.ensure_future(
            assistant.handle_request(boat_forest(), "add garden", slow_ask, guard=guard)
        )
        await asyncio.sleep(0)
        second = await assistant.handle_request(boat_forest(), "add shed", slow_ask, guard=guard)
        gate.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert calls == ["add garden"]
    assert second.message == "busy"
    assert second.forest == boat_forest()
    assert first.changed == 1
    assert not guard.busy


@pytest.mark.unit
def test_guard_released_after_failure(capsys):
    """
    Ensure a failing model call reports no changes and frees the slot.

    Returns
    -------
    None
        This test asserts guard release on errors.
    """
    guard = assistant.InFlightGuard()

    async def broken_ask(forest, text):
        raise ValueError("bad payload")

    result = asyncio.run(
        assistant.handle_request(boat_forest(), "add garden", broken_ask, guard=guard)
    )

    assert result.message == "no changes"
    assert result.changed == 0
    assert not guard.busy
    assert "you2: request failed" in capsys.readouterr().err


@pytest.mark.unit
def test_offline_model_reports_no_changes():
    """
    Ensure network errors from the model never escape the pipeline.

    Returns
    -------
    None
        This test asserts connection failure handling.
    """
    guard = assistant.InFlightGuard()

    async def offline_ask(forest, text):
        raise ConnectionError("offline")

    result = asyncio.run(
        assistant.handle_request(boat_forest(), "add garden", offline_ask, guard=guard)
    )

    assert result.message == "no changes"
    assert result.forest == boat_forest()
    assert not guard.busy


@pytest.mark.parametrize("reply", [5, "not json", None, {"action": "add", "title": "Gym"}])
@pytest.mark.unit
def test_non_list_model_reply_reports_no_changes(reply):
    """
    Ensure a reply that is not a list of instructions changes nothing.

    Parameters
    ----------
    reply : object
        Value returned by the model collaborator.

    Returns
    -------
    None
        This test asserts wrong-shape reply handling.
    """

    async def odd_ask(forest, text):
        return reply

    result = asyncio.run(assistant.handle_request(boat_forest(), "add gym", odd_ask))

    assert result.changed == 0
    assert result.message == "no changes"
    assert result.forest == boat_forest()


@pytest.mark.unit
def test_non_finite_model_target_is_dropped():
    """
    Ensure an infinite target date from the model is ignored, not raised.

    Returns
    -------
    None
        This test asserts untrusted target validation end to end.
    """
    reply = parse_edit_response('[{"action": "add", "type": "thread", "title": "Gym", "targetDate": Infinity}]')

    async def ask(forest, text):
        return reply

    result = asyncio.run(assistant.handle_request(boat_forest(), "add gym", ask, now=MONDAY))

    assert result.changed == 1
    assert result.forest["execution"][0]["text"] == "Gym"
    assert result.forest["execution"][0]["targetDate"] is None


@pytest.mark.unit
def test_blank_request_is_noop():
    """
    Ensure blank requests do nothing.

    Returns
    -------
    None
        This test asserts blank input handling.
    """
    result = asyncio.run(assistant.handle_request(boat_forest(), "   ", failing_ask))

    assert result.source == "empty"
    assert result.forest == boat_forest()


@pytest.mark.unit
def test_apply_suggested_instructions_counts_changes():
    """
    Ensure chat suggestions apply on demand and report their count.

    Returns
    -------
    None
        This test asserts suggestion application.
    """
    forest, changed = assistant.apply_suggested_instructions(
        boat_forest(),
        [
            HighLevelInstruction("add", "step", "Sink", parent_title="boat"),
            HighLevelInstruction("delete", title="Garden"),
        ],
    )

    assert changed == 1
    assert forest["execution"][0]["steps"][0]["text"] == "Sink"


@pytest.mark.unit
def test_assistant_doctest_examples():
    """
    Run doctest examples embedded in the pipeline.

    Returns
    -------
    None
        This test asserts doctest coverage for the pipeline.
    """
    results = doctest.testmod(assistant)
    assert results.failed == 0
