from __future__ import annotations

from datetime import datetime
from typing import Sequence

PLANNER_SYSTEM_PROMPT = (
    "You are Steward's planning assistant. You decide which tools to call to satisfy a user's request "
    "about their schedule, documents, correspondence and records. Reply with a short analysis followed "
    "by a JSON plan."
)

EVALUATOR_SYSTEM_PROMPT = (
    "You judge whether an assistant has fully satisfied a user's request. You are strict about actions: "
    "reading related data never counts as performing a requested change."
)

VALIDATION_SYSTEM_PROMPT = "You check whether an answer matches what the user asked for. Reply with one verdict line."

SYNTHESIS_SYSTEM_PROMPT = (
    "You are Steward, a personal assistant. You write the final reply to the user using only the tool "
    "results you are given."
)


def build_planner_prompt(
    *,
    request: str,
    tool_catalog: str,
    artifact_digest: str,
    context_digest: str,
    now: datetime,
    replanning: bool,
    transcript: str = "",
) -> str:
    sections = [
        f"Current date and time: {now.isoformat(timespec='minutes')}",
        f"User request:\n{request}",
        f"Available tools:\n{tool_catalog}",
        f"Files:\n{artifact_digest}",
    ]
    if replanning:
        sections.append(
            "Progress so far:\n"
            f"{context_digest}\n\n"
            "Plan only the remaining work. Do not repeat calls that already succeeded. "
            "Return an empty plan if nothing else is needed."
        )
        if transcript:
            sections.append(f"Conversation so far:\n{transcript}")
    else:
        sections.append(f"Context:\n{context_digest}")
    sections.append(
        "Planning Instructions:\n"
        "1. Under 'ANALYSIS:' explain briefly what the user wants and which data or actions are needed.\n"
        "2. Under 'PLAN:' give a JSON array in a ```json fenced block. Each item is "
        '{"goal": "...", "tool": "<tool name>", "parameters": {...}}.\n'
        "3. Use only tool names from the list above, without category prefixes.\n"
        "4. Never invent identifiers. Steps that need an id from a lookup must come after that lookup.\n"
        "5. Put independent lookups first; changes (create, update, delete, send) come after the data they need.\n"
        "6. If no tool is needed, return an empty array."
    )
    return "\n\n".join(sections)


def build_evaluator_prompt(
    *,
    request: str,
    context_digest: str,
    step_history: str,
    transcript: str,
    completed_mutations: Sequence[str],
) -> str:
    mutations = ", ".join(completed_mutations) if completed_mutations else "none"
    return "\n\n".join(
        [
            f"User request:\n{request}",
            f"Context:\n{context_digest}",
            f"Steps so far:\n{step_history}",
            f"Conversation:\n{transcript}",
            f"Successful changes (create/update/delete/send): {mutations}",
            "Decide whether the request is fully satisfied.\n"
            "- Retrieving or analyzing data only satisfies requests that ask for information.\n"
            "- If the user asked to create, update, delete, send or save something, the request is only "
            "complete when the matching change succeeded.\n"
            "Start your reply with exactly one of:\n"
            "CONTINUE: <what is still missing>\n"
            "COMPLETE: <why the request is satisfied>",
        ]
    )


def build_validation_prompt(*, request: str, answer: str) -> str:
    return "\n\n".join(
        [
            f"User request:\n{request}",
            f"Answer:\n{answer}",
            "Does the answer address the request in the format the user expects?\n"
            "Reply with FORMAT_ACCEPTABLE or FORMAT_NEEDS_REFINEMENT followed by a short reason.",
        ]
    )


def build_synthesis_prompt(
    *,
    request: str,
    context_digest: str,
    transcript: str,
    step_history: str,
    confirmed_actions: Sequence[str],
    failed_actions: Sequence[str],
) -> str:
    confirmed = "\n".join(f"- {item}" for item in confirmed_actions) if confirmed_actions else "none"
    failed = "\n".join(f"- {item}" for item in failed_actions) if failed_actions else "none"
    return "\n\n".join(
        [
            f"User request:\n{request}",
            f"Context:\n{context_digest}",
            f"Steps:\n{step_history}",
            f"Conversation:\n{transcript}",
            f"CONFIRMED ACTIONS:\n{confirmed}",
            f"FAILED ACTIONS:\n{failed}",
            "Write the reply to the user.\n"
            "- Base every statement on the tool results above; if data is missing, say so.\n"
            "- NEVER claim an action was completed unless it is listed under CONFIRMED ACTIONS.\n"
            "- Mention failed actions and what the user can do next.\n"
            "- Be concise and use short lists for multiple items.\n"
            "End with a line starting 'REASONING:' that briefly explains which results you relied on.",
        ]
    )
