"""Fixed tool vocabulary shared by the planner, executor and evaluator."""

from __future__ import annotations

import re

SYNTHESIS_TOOL = "synthesize_final_answer"
INITIALIZE_TOOL = "initialize_file_search"
KNOWLEDGE_SEARCH_TOOL = "knowledge_search"
FILE_SEARCH_TOOL = "search_files"

RESERVED_TOOLS = frozenset({SYNTHESIS_TOOL, INITIALIZE_TOOL})

READ_ONLY_TOOLS = frozenset(
    {
        "get_events",
        "search_events",
        "search_emails",
        "get_email",
        "search_web",
        "get_web_page_content",
        "summarize_web_page",
        "check_website",
        "get_passports",
        FILE_SEARCH_TOOL,
        "get_document_by_name",
        KNOWLEDGE_SEARCH_TOOL,
    }
)

# Tool name -> parameter key holding the schedule payload to sanitize.
MUTATING_SCHEDULE_TOOLS: dict[str, str] = {
    "create_event": "event_data",
    "update_event": "changes",
}

MUTATING_TOOLS = frozenset(
    {
        "create_event",
        "update_event",
        "delete_event",
        "send_email",
        "reply_to_email",
        "create_passport",
        "update_passport",
        "delete_passport",
        "cleanup_files",
    }
)

TOOL_ALIASES: dict[str, str] = {
    "file_search": FILE_SEARCH_TOOL,
    "file_search_tool": FILE_SEARCH_TOOL,
    "search_file": FILE_SEARCH_TOOL,
    "search_documents": FILE_SEARCH_TOOL,
    "vector_file_search": KNOWLEDGE_SEARCH_TOOL,
    "vector_search": KNOWLEDGE_SEARCH_TOOL,
    "search_knowledge": KNOWLEDGE_SEARCH_TOOL,
    "list_events": "get_events",
    "calendar_search": "search_events",
    "web_search": "search_web",
}

PARAMETER_HINTS: dict[str, str] = {
    "get_events": "time_min and time_max as ISO timestamps, optional max_results",
    "search_events": "query text, optional time_min/time_max",
    "create_event": "event_data with summary, start and end ({date} or {dateTime}), optional description/location",
    "update_event": "event_id from a prior lookup plus changes with the fields to modify",
    "delete_event": "event_id from a prior lookup",
    "search_emails": "query text, optional max_results",
    "get_email": "message_id from a prior search",
    "send_email": "to, subject and body",
    "reply_to_email": "message_id from a prior search and body",
    "search_web": "query text",
    "get_web_page_content": "url",
    "summarize_web_page": "url",
    "check_website": "url",
    "get_passports": "optional filters",
    "create_passport": "passport fields extracted from an uploaded document",
    "update_passport": "passport_id from a prior lookup plus changed fields",
    "delete_passport": "passport_id from a prior lookup",
    FILE_SEARCH_TOOL: "query text; searches files uploaded in this conversation",
    "get_document_by_name": "name of an uploaded document",
    KNOWLEDGE_SEARCH_TOOL: "query text; index ids are supplied automatically",
    "cleanup_files": "no parameters",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def canonical_tool_name(raw: str) -> str:
    """Strip category prefixes, snake_case camelCase names and apply the alias table."""
    name = raw.strip()
    if "." in name:
        name = name.rsplit(".", 1)[-1]
    name = _CAMEL_BOUNDARY.sub("_", name).replace("-", "_").replace(" ", "_").lower()
    return TOOL_ALIASES.get(name, name)


def is_read_only(name: str) -> bool:
    return name in READ_ONLY_TOOLS


def is_mutating(name: str) -> bool:
    return name in MUTATING_TOOLS or name in MUTATING_SCHEDULE_TOOLS
