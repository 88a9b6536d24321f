"""virtual_patient.patient_sim.prompts

Prompt builders and message formatting for the simulated patient.

Split out so you can iterate on patient behavior without touching UI or provider code.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Sequence

from virtual_patient.scenarios.config import ScenarioConfig
from virtual_patient.state.turns import ToolCallPart, Turn

_STAGE_DIRECTION = re.compile(r"\*[^*]*\*")

DEFAULT_STARTING_MESSAGE = "Hello! How can I help you today?"


def normalize_starting_message(message: str | None) -> str:
    """Scenario files store newlines escaped (`\\n`); turn them into real newlines."""
    return (message or DEFAULT_STARTING_MESSAGE).replace("\\n", "\n")


def strip_stage_directions(text: str) -> str:
    """Drop *asterisk-marked* actions, which a voice agent would otherwise read aloud."""
    return _STAGE_DIRECTION.sub("", text or "").strip()


def build_system_prompt(scenario: ScenarioConfig) -> str:
    """System prompt used for every patient turn."""
    return (
        f"{scenario.persona_prompt.strip()}\n\n"
        "You are the patient in a pharmacy training encounter. The user is a pharmacy student.\n"
        "Stay in character and do not break the fourth wall.\n"
        "Never reveal that you are an AI language model.\n"
        "Describe physical actions in *italics*.\n"
        "When a tool returns a result, describe it from your perspective before continuing.\n"
    )


def blood_pressure_request(patient_name: str) -> str:
    """User action message that prompts the patient model to call the blood pressure tool."""
    return f"*Taking {patient_name}'s blood pressure reading...*"


def _tool_call_message(turn: Turn, calls: List[ToolCallPart]) -> Dict[str, Any]:
    message: Dict[str, Any] = {"role": "assistant", "content": turn.content or None}
    message["tool_calls"] = [
        {
            "id": call.request_id,
            "type": "function",
            "function": {"name": call.tool_name, "arguments": json.dumps(call.arguments)},
        }
        for call in calls
    ]
    return message


def turns_to_messages(turns: Sequence[Turn], system_prompt: str) -> List[Dict[str, Any]]:
    """Convert turns to chat-completion messages (system prompt first).

    Tool calls without a result (a stopped or failed turn) are left out, since the
    API rejects an assistant tool call that is never answered.
    """
    answered = {r.request_id for t in turns for r in t.tool_results}
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for turn in turns:
        calls = [c for c in turn.tool_calls if c.request_id in answered]
        if turn.role == "tool-result":
            for result in turn.tool_results:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.request_id,
                        "content": json.dumps(result.payload, ensure_ascii=False, default=str),
                    }
                )
        elif turn.role == "assistant" and calls:
            messages.append(_tool_call_message(turn, calls))
        elif turn.content:
            messages.append({"role": turn.role, "content": turn.content})
    return messages
