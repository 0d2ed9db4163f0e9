"""
Tests for the you2 command-line interface.
"""

import doctest

import pytest
from typer.testing import CliRunner

import you2
from you2.adapter import HighLevelInstruction
from you2.storage import JsonFileStore, load_forest, load_logs

runner = CliRunner()


def invoke(*args, **kwargs):
    return runner.invoke(you2.build_app(), list(args), **kwargs)


def stored_forest():
    return load_forest(JsonFileStore())


@pytest.mark.unit
def test_add_and_show():
    """
    Ensure added items are persisted and rendered as a tree.

    Returns
    -------
    None
        This test asserts add and show.
    """
    assert invoke("add", "Boat").exit_code == 0
    assert invoke("add", "Sink", "--under", "0").exit_code == 0
    assert invoke("add", "Sleep", "early", "--level", "base").exit_code == 0

    result = invoke("show")

    assert result.exit_code == 0
    assert "+- 0 [ ] Boat" in result.stdout
    assert "   +- 0.0 [ ] Sink" in result.stdout
    assert "+- 0 [ ] Sleep early" in result.stdout
    assert stored_forest()["baseline"][0]["text"] == "Sleep early"


@pytest.mark.unit
def test_add_rejects_missing_parent():
    """
    Ensure adding under a missing parent is a usage error.

    Returns
    -------
    None
        This test asserts parent validation.
    """
    result = invoke("add", "Sink", "--under", "4")

    assert result.exit_code != 0
    assert stored_forest()["execution"] == []


@pytest.mark.unit
def test_toggle_rename_move_delete():
    """
    Ensure the path-addressed commands edit the stored forest.

    Returns
    -------
    None
        This test asserts manual editing commands.
    """
    invoke("add", "Laptop")
    invoke("add", "Boat")

    assert "done: Boat" in invoke("toggle", "exec", "0").stdout
    assert invoke("rename", "execution", "0", "Yacht").exit_code == 0
    assert invoke("move", "execution", "0", "down").exit_code == 0
    assert [node["text"] for node in stored_forest()["execution"]] == ["Laptop", "Yacht"]
    assert stored_forest()["execution"][1]["completed"] is True

    assert "no changes" in invoke("move", "execution", "1", "down").stdout
    assert invoke("move", "execution", "0", "sideways").exit_code != 0

    assert "deleted Laptop" in invoke("delete", "execution", "0").stdout
    assert [node["text"] for node in stored_forest()["execution"]] == ["Yacht"]


@pytest.mark.unit
def test_bad_addresses_are_usage_errors():
    """
    Ensure malformed levels and paths exit non-zero.

    Returns
    -------
    None
        This test asserts address validation.
    """
    invoke("add", "Boat")

    assert invoke("toggle", "later", "0").exit_code != 0
    assert invoke("toggle", "execution", "zero").exit_code != 0
    assert invoke("delete", "execution", "3").exit_code != 0


@pytest.mark.unit
def test_promote_and_fold():
    """
    Ensure promotion and folding affect the rendered tree.

    Returns
    -------
    None
        This test asserts promote and fold.
    """
    invoke("add", "Boat")
    invoke("add", "Sink", "--under", "0")
    invoke("add", "Pipe", "--under", "0.0")

    assert "folded" in invoke("fold", "execution", "0.0").stdout
    folded = invoke("show", "execution").stdout
    assert "0.0 [ ] Sink (+1)" in folded
    assert "Pipe" not in folded
    assert "Pipe" in invoke("show", "--all").stdout

    assert "promoted" in invoke("promote", "execution", "0.0").stdout
    roots = stored_forest()["execution"]
    assert [node["text"] for node in roots] == ["Sink", "Boat"]
    assert roots[0]["steps"][0]["text"] == "Pipe"


@pytest.mark.unit
def test_target_and_repeat():
    """
    Ensure targets and weekly repeats can be set and cleared.

    Returns
    -------
    None
        This test asserts scheduling commands.
    """
    invoke("add", "Gym")

    assert "due" in invoke("target", "execution", "0", "next_thu").stdout
    assert stored_forest()["execution"][0]["allDay"] is True
    assert invoke("target", "execution", "0", "whenever").exit_code != 0

    assert "repeats weekly" in invoke("repeat", "execution", "0", "thu", "18:30").stdout
    gym = stored_forest()["execution"][0]
    assert gym["repeat"] == {"weekday": 4, "hour": 18, "minute": 30}
    assert gym["allDay"] is False

    assert "rescheduled Gym" in invoke("toggle", "execution", "0").stdout
    assert stored_forest()["execution"][0]["completed"] is False

    invoke("repeat", "execution", "0", "--clear")
    invoke("target", "execution", "0", "--clear")
    gym = stored_forest()["execution"][0]
    assert "repeat" not in gym
    assert gym["targetDate"] is None


@pytest.mark.unit
def test_do_runs_shortcuts_offline():
    """
    Ensure shortcut requests work without an API key.

    Returns
    -------
    None
        This test asserts the local command path.
    """
    invoke("add", "Boat")

    result = invoke("do", "mark", "boat", "as", "done")

    assert "changed 1 item(s)" in result.stdout
    assert stored_forest()["execution"][0]["completed"] is True


@pytest.mark.unit
def test_do_without_api_key_reports_no_changes():
    """
    Ensure model requests degrade to "no changes" without a key.

    Returns
    -------
    None
        This test asserts graceful degradation.
    """
    result = invoke("do", "add", "laptop", "and", "boat")

    assert result.exit_code == 0
    assert "no changes" in result.stdout
    assert stored_forest()["execution"] == []


@pytest.mark.unit
def test_do_applies_model_instructions(monkeypatch):
    """
    Ensure model instructions are applied and persisted.

    Returns
    -------
    None
        This test asserts the model edit path.
    """

    async def fake_ask(forest, text, settings):
        return [
            HighLevelInstruction("add", "thread", "Boat"),
            HighLevelInstruction("add", "step", "Sink", parent_title="Boat"),
        ]

    monkeypatch.setattr(you2, "ask_ai_to_edit", fake_ask)

    result = invoke("do", "add boat with a sink step")

    assert "changed 2 item(s)" in result.stdout
    assert stored_forest()["execution"][0]["steps"][0]["text"] == "Sink"


@pytest.mark.unit
def test_do_prompts_when_text_missing():
    """
    Ensure the request is read from input when omitted.

    Returns
    -------
    None
        This test asserts the prompt fallback.
    """
    invoke("add", "Boat")

    result = invoke("do", input="delete boat\n")

    assert "changed 1 item(s)" in result.stdout
    assert stored_forest()["execution"] == []


@pytest.mark.unit
def test_chat_apply(monkeypatch):
    """
    Ensure chat prints the reply and applies suggestions on request.

    Returns
    -------
    None
        This test asserts the chat command.
    """

    async def fake_chat(forest, history, text, settings):
        return you2.llm.ChatReply("Let's fix the boat.", [HighLevelInstruction("add", "thread", "Boat")])

    monkeypatch.setattr(you2, "chat", fake_chat)

    listed = invoke("chat", "my", "boat", "leaks")
    assert "Let's fix the boat." in listed.stdout
    assert "suggest: add thread Boat" in listed.stdout
    assert stored_forest()["execution"] == []

    applied = invoke("chat", "my", "boat", "leaks", "--apply")
    assert "changed 1 item(s)" in applied.stdout
    assert stored_forest()["execution"][0]["text"] == "Boat"


@pytest.mark.unit
def test_today_insights_and_log():
    """
    Ensure the read-only views and logs work end to end.

    Returns
    -------
    None
        This test asserts today, insights and log commands.
    """
    assert "nothing due today" in invoke("today").stdout
    invoke("add", "Call plumber")
    invoke("target", "execution", "0", "today")
    assert "Call plumber" in invoke("today").stdout

    assert "all threads look healthy" in invoke("insights").stdout

    assert "logged" in invoke("log", "mood", "calm", "morning").stdout
    assert load_logs(JsonFileStore())["mood"][0]["text"] == "calm morning"
    assert "calm morning" in invoke("log", "mood").stdout


@pytest.mark.unit
def test_render_tolerates_out_of_range_target():
    """
    Ensure a stored target datetime cannot represent still renders.

    Returns
    -------
    None
        This test asserts rendering of poisoned targets.
    """
    forest = {"execution": [{"text": "Gym", "targetDate": 10**17, "allDay": False, "steps": []}]}

    lines = you2.render_forest_lines(forest, ["execution"])

    assert lines == ["execution:", "+- 0 [ ] Gym"]


@pytest.mark.unit
def test_cli_doctest_examples():
    """
    Run doctest examples embedded in CLI helpers.

    Returns
    -------
    None
        This test asserts doctest coverage for CLI helpers.
    """
    results = doctest.testmod(you2)
    assert results.failed == 0
