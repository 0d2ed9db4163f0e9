#!/usr/bin/env python3
"""
Chat-completions client that turns requests into edit instructions.

Model output is untrusted: every failure mode (network, HTTP status,
non-JSON, wrong shape) degrades to "no instructions".
"""

from __future__ import annotations

import json
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .adapter import HighLevelInstruction
from .config import AISettings
from .tree import LEVELS, Forest

EDIT_TEMPERATURE = 0.2
CHAT_TEMPERATURE = 0.4

EDIT_SYSTEM_PROMPT = """
You convert user text about tasks into a JSON ARRAY of edit instructions.

Return ONLY valid JSON. No markdown, no backticks, no explanations.

Each object in the array MUST have this shape:
{
  "action": "add" | "delete" | "edit",
  "type": "thread" | "step" | "substep",
  "title": "string",
  "old_title": "string or null",
  "parent_title": "string or null",
  "targetDate": null
}

Semantics:
- action = "add": create new items.
- action = "delete": remove existing items by title.
- action = "edit": rename an existing item from old_title to title.

Types:
- type = "thread": top-level item (e.g. "Laptop", "Boat").
- type = "step": direct child of a thread.
- type = "substep": child of a step.

Fields:
- title: for add the new title; for delete the title to delete; for edit the new title.
- old_title: only for edit, the previous title. null for add/delete.
- parent_title: for step/substep the title of the parent node. For thread null.
- targetDate: always null. Dates are handled by the app.

Example:

User: add laptop and boat and at boat add sink and at sink add buy connector
Output:
[
  { "action": "add", "type": "thread",  "title": "Laptop",        "old_title": null, "parent_title": null,   "targetDate": null },
  { "action": "add", "type": "thread",  "title": "Boat",          "old_title": null, "parent_title": null,   "targetDate": null },
  { "action": "add", "type": "step",    "title": "Sink",          "old_title": null, "parent_title": "Boat", "targetDate": null },
  { "action": "add", "type": "substep", "title": "Buy Connector", "old_title": null, "parent_title": "Sink", "targetDate": null }
]

If the request is not about changing tasks, return [].
""".strip()

CHAT_SYSTEM_PROMPT = """
You are a sharp, grounded assistant helping someone manage their life.

1) Talk like a human, short and clear. Help them think, prioritise, and calm down.
2) Also detect hidden tasks and structure.

Return ONLY valid JSON with this exact shape:

{
  "reply": "what you say back in chat, as a short paragraph",
  "task_instructions": [
    {
      "action": "add" | "delete" | "edit",
      "type": "thread" | "step" | "substep",
      "title": "string",
      "old_title": "string or null",
      "parent_title": "string or null",
      "targetDate": null
    }
  ]
}

Rules:
- "thread" = top-level item, "step" = directly under a thread, "substep" = under a step.
- Only create tasks when it is obviously useful; otherwise use an empty array.
- Never mention JSON or instructions in "reply".
""".strip()

_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```$")


@dataclass(frozen=True)
class ChatReply:
    """
    Conversational reply plus suggested (not yet applied) instructions.

    Attributes
    ----------
    reply : str
        Text to show the user.
    task_instructions : List[HighLevelInstruction]
        Suggested edits.
    """

    reply: str
    task_instructions: List[HighLevelInstruction] = field(default_factory=list)


def strip_code_fences(content: str) -> str:
    """
    Remove a surrounding markdown code fence.

    Examples
    --------
    >>> strip_code_fences('```json\\n[]\\n```')
    '[]'
    >>> strip_code_fences('  [1] ')
    '[1]'
    """
    text = (content or "").strip()
    text = _FENCE_START.sub("", text)
    text = _FENCE_END.sub("", text)
    return text.strip()


def _parse_instruction_list(items: Any) -> List[HighLevelInstruction]:
    if not isinstance(items, list):
        return []
    parsed = (HighLevelInstruction.from_mapping(item) for item in items)
    return [item for item in parsed if item is not None]


def parse_edit_response(content: Optional[str]) -> List[HighLevelInstruction]:
    """
    Parse model output into instructions, dropping anything malformed.

    Parameters
    ----------
    content : Optional[str]
        Raw message content.

    Returns
    -------
    List[HighLevelInstruction]
        Valid instructions; empty for non-JSON or non-array content.

    Examples
    --------
    >>> parse_edit_response("not json")
    []
    >>> parse_edit_response('{"action": "add"}')
    []
    >>> [i.title for i in parse_edit_response('```json\\n[{"action": "add", "type": "thread", "title": "Boat"}, 3]\\n```')]
    ['Boat']
    """
    text = strip_code_fences(content or "")
    if not text:
        return []
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        print("you2: model reply was not valid JSON; ignoring it.", file=sys.stderr)
        return []
    if not isinstance(payload, list):
        print("you2: model reply was not a JSON array; ignoring it.", file=sys.stderr)
        return []
    return _parse_instruction_list(payload)


def parse_chat_response(content: Optional[str]) -> ChatReply:
    """
    Parse a chat reply object.

    Examples
    --------
    >>> parse_chat_response('{"reply": " Okay. ", "task_instructions": [{"action": "add", "title": "Boat"}]}').reply
    'Okay.'
    >>> parse_chat_response("oops").task_instructions
    []
    """
    text = strip_code_fences(content or "")
    try:
        payload = json.loads(text) if text else {}
    except json.JSONDecodeError:
        print("you2: chat reply was not valid JSON; ignoring it.", file=sys.stderr)
        return ChatReply("I got confused trying to parse that.")
    if not isinstance(payload, dict):
        return ChatReply("Okay.")
    reply = payload.get("reply")
    reply = reply.strip() if isinstance(reply, str) and reply.strip() else "Okay."
    return ChatReply(reply, _parse_instruction_list(payload.get("task_instructions")))


def snapshot_for_prompt(forest: Forest) -> Dict[str, Any]:
    """
    Reduce the forest to titles and nesting for the prompt.

    Examples
    --------
    >>> snapshot_for_prompt({"execution": [{"text": "Boat", "timestamp": 1, "steps": [{"text": "Sink"}]}]})
    {'baseline': [], 'execution': [{'text': 'Boat', 'completed': False, 'steps': [{'text': 'Sink', 'completed': False, 'steps': []}]}], 'creative': []}
    """

    def reduce(node: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(node, dict):
            return None
        steps = node.get("steps") if isinstance(node.get("steps"), list) else []
        return {
            "text": node.get("text", ""),
            "completed": bool(node.get("completed")),
            "steps": [child for child in (reduce(step) for step in steps) if child],
        }

    snapshot: Dict[str, Any] = {}
    for level in LEVELS:
        roots = forest.get(level) if isinstance(forest, dict) else None
        items = roots if isinstance(roots, list) else []
        snapshot[level] = [child for child in (reduce(node) for node in items) if child]
    return snapshot


def build_edit_messages(forest: Forest, instruction: str) -> List[Dict[str, str]]:
    """Build the message list for an edit request."""
    tree = json.dumps(snapshot_for_prompt(forest), indent=2)
    user_prompt = (
        f"Current task tree (for context only):\n{tree}\n\n"
        f"User instruction:\n{instruction.strip()}"
    )
    return [
        {"role": "system", "content": EDIT_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_chat_messages(
    forest: Forest,
    history: Sequence[Dict[str, str]],
    text: str,
) -> List[Dict[str, str]]:
    """Build the message list for a chat turn."""
    history_lines = "\n".join(
        f"{str(message.get('role', '')).upper()}: {message.get('content', '')}"
        for message in history
        if isinstance(message, dict)
    )
    tree = json.dumps(snapshot_for_prompt(forest), indent=2)
    user_prompt = (
        f"Conversation so far:\n{history_lines}\n\n"
        f"Current task tree (for context only):\n{tree}\n\n"
        f'User just said:\n"{text.strip()}"\n\n'
        "Respond with JSON only."
    )
    return [
        {"role": "system", "content": CHAT_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def extract_message_content(payload: Any) -> Optional[str]:
    """
    Pull ``choices[0].message.content`` out of a completion payload.

    Examples
    --------
    >>> extract_message_content({"choices": [{"message": {"content": "[]"}}]})
    '[]'
    >>> extract_message_content({"error": "nope"}) is None
    True
    """
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


async def request_completion(
    settings: AISettings,
    messages: List[Dict[str, str]],
    *,
    model: Optional[str] = None,
    temperature: float = EDIT_TEMPERATURE,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """
    POST a chat-completions request and return the message content.

    Parameters
    ----------
    settings : AISettings
        Endpoint, key and timeout.
    messages : List[Dict[str, str]]
        Chat messages.
    model : Optional[str], optional
        Model override (default: ``settings.model``).
    temperature : float, optional
        Sampling temperature.
    client : Optional[httpx.AsyncClient], optional
        Client to reuse; one is created (and closed) when omitted.

    Returns
    -------
    Optional[str]
        Message content, or None on any failure.
    """
    if not settings.api_key:
        print("you2: no API key configured; skipping model request.", file=sys.stderr)
        return None
    url = settings.base_url.rstrip("/") + "/chat/completions"
    body = {
        "model": model or settings.model,
        "messages": messages,
        "temperature": temperature,
    }
    headers = {"Authorization": f"Bearer {settings.api_key}"}

    async def post(http: httpx.AsyncClient) -> Optional[str]:
        try:
            resp = await http.post(url, json=body, headers=headers)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            print(
                f"you2: model request failed with HTTP {exc.response.status_code}.",
                file=sys.stderr,
            )
            return None
        except httpx.HTTPError as exc:
            print(f"you2: model request failed: {exc}", file=sys.stderr)
            return None
        except ValueError:
            print("you2: model response was not JSON.", file=sys.stderr)
            return None
        return extract_message_content(payload)

    if client is not None:
        return await post(client)
    async with httpx.AsyncClient(timeout=settings.timeout) as http:
        return await post(http)


async def ask_ai_to_edit(
    forest: Forest,
    instruction: str,
    settings: AISettings,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[HighLevelInstruction]:
    """
    Ask the model for title-addressed edits matching a request.

    Returns
    -------
    List[HighLevelInstruction]
        Parsed instructions; empty on any failure.
    """
    content = await request_completion(
        settings,
        build_edit_messages(forest, instruction),
        model=settings.model,
        temperature=EDIT_TEMPERATURE,
        client=client,
    )
    if content is None:
        return []
    return parse_edit_response(content)


async def chat(
    forest: Forest,
    history: Sequence[Dict[str, str]],
    text: str,
    settings: AISettings,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> ChatReply:
    """
    Run one chat turn; suggested instructions are returned, not applied.
    """
    content = await request_completion(
        settings,
        build_chat_messages(forest, history, text),
        model=settings.chat_model,
        temperature=CHAT_TEMPERATURE,
        client=client,
    )
    if content is None:
        return ChatReply("I can't reach the model right now.")
    return parse_chat_response(content)
