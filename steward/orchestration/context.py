from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Iterable, Sequence

from ..schemas.artifacts import ProcessedArtifact
from ..schemas.orchestration import ChatMessage, ConversationEntry, ToolExecution
from ..tools.catalog import PARAMETER_HINTS
from ..tools.registry import ToolDescriptor

HISTORY_WINDOW = 10
DEDUP_WINDOW = 3
RESULT_PREVIEW_CHARS = 1500
HISTORY_PREVIEW_CHARS = 500


def _dump(value: Any, limit: int | None = None) -> str:
    try:
        text = json.dumps(value, indent=2, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        text = str(value)
    if limit is not None and len(text) > limit:
        return f"{text[:limit]}... (truncated)"
    return text


def build_tool_catalog(tools: Iterable[ToolDescriptor]) -> str:
    grouped: dict[str, list[ToolDescriptor]] = defaultdict(list)
    for tool in tools:
        grouped[tool.category].append(tool)
    if not grouped:
        return "(no tools available)"
    lines: list[str] = []
    for category in sorted(grouped):
        lines.append(f"{category.upper()}:")
        for tool in grouped[category]:
            hint = PARAMETER_HINTS.get(tool.name)
            line = f"- {tool.name}: {tool.description or '(no description)'}"
            if hint:
                line += f" [params: {hint}]"
            lines.append(line)
    return "\n".join(lines)


def build_artifact_digest(artifacts: Sequence[ProcessedArtifact]) -> str:
    if not artifacts:
        return "No files uploaded in this conversation."
    lines = [f"Uploaded files ({len(artifacts)}):"]
    for artifact in artifacts:
        markers: list[str] = []
        if artifact.is_image:
            markers.append("image")
        if artifact.converted_images:
            markers.append(f"{len(artifact.converted_images)} page image(s)")
        if artifact.document_id:
            markers.append(f"document id {artifact.document_id}")
        suffix = f" ({', '.join(markers)})" if markers else ""
        lines.append(f"- {artifact.name} [{artifact.file_type}, {artifact.size} bytes]{suffix}")
    return "\n".join(lines)


def summarize_executions(tool_log: Sequence[ToolExecution]) -> str:
    succeeded = sum(1 for execution in tool_log if execution.result.success)
    used = sorted({execution.tool for execution in tool_log})
    return (
        f"Total: {len(tool_log)}, succeeded: {succeeded}, failed: {len(tool_log) - succeeded}. "
        f"Tools used: {', '.join(used) if used else 'none'}"
    )


def build_context_digest(
    request: str,
    tool_log: Sequence[ToolExecution],
    chat_history: Sequence[ChatMessage] = (),
) -> str:
    """Textual digest of the request, recent chat and everything the tools returned so far."""
    sections = [f"USER REQUEST: {request}"]

    recent = list(chat_history)[-HISTORY_WINDOW:]
    if recent:
        history = "\n".join(
            f"{message.role.upper()}: {_truncate(message.content, HISTORY_PREVIEW_CHARS)}" for message in recent
        )
        sections.append(f"CHAT HISTORY:\n{history}")

    if tool_log:
        rendered = []
        for index, execution in enumerate(tool_log, start=1):
            entry = {
                "tool": execution.tool,
                "parameters": execution.parameters,
                "success": execution.result.success,
                "data": execution.result.data,
                "message": execution.result.message,
                "error": execution.result.error,
            }
            rendered.append(f"{index}. {_dump(entry, RESULT_PREVIEW_CHARS)}")
        sections.append("TOOL EXECUTIONS:\n" + "\n".join(rendered))
        sections.append(f"TOOL EXECUTION SUMMARY: {summarize_executions(tool_log)}")
    else:
        sections.append("TOOL EXECUTIONS: none yet")

    return "\n\n".join(sections)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


def _status(execution: ToolExecution) -> str:
    return "succeeded" if execution.result.success else "failed"


def format_tool_result(execution: ToolExecution) -> str:
    result = execution.result
    icon = "✅" if result.success else "❌"
    lines = [
        f"{icon} Tool {execution.tool} {_status(execution)} in {execution.duration_ms}ms",
        f"Parameters: {_dump(execution.parameters, 400)}",
    ]
    if result.data is not None:
        lines.append(f"Result: {_dump(result.data, RESULT_PREVIEW_CHARS)}")
    if result.message:
        lines.append(f"Message: {result.message}")
    if result.error:
        lines.append(f"Error: {result.error}")
    return "\n".join(lines)


def format_terse_status(execution: ToolExecution) -> str:
    return f"Tool {execution.tool} {_status(execution)}."


def has_meaningful_content(execution: ToolExecution) -> bool:
    result = execution.result
    if not result.success:
        return True
    if result.message:
        return True
    data = result.data
    if data is None:
        return False
    if isinstance(data, (list, dict, str)) and not data:
        return False
    return True


def should_inject_full_summary(transcript: Sequence[ConversationEntry], execution: ToolExecution) -> bool:
    """False when a summary for the same tool is among the last few entries or the result is empty."""
    if not has_meaningful_content(execution):
        return False
    marker = f"Tool {execution.tool} "
    for entry in transcript[-DEDUP_WINDOW:]:
        if marker in entry.content and ("succeeded" in entry.content or "failed" in entry.content):
            return False
    return True


def format_transcript(transcript: Sequence[ConversationEntry]) -> str:
    if not transcript:
        return "(empty)"
    return "\n\n".join(f"{entry.role.upper()}: {entry.content}" for entry in transcript)


def format_step_history(steps: Sequence[Any]) -> str:
    if not steps:
        return "(no steps recorded)"
    return "\n".join(f"- [{step.type}] {_truncate(step.content, 200)}" for step in steps)
