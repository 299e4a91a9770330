"""Helpers to parse Responses API outputs."""

import json
from typing import Any, Dict, Optional

from models.errors import AnalysisParseError


def parse_function_call(response: Any, *, tool_name: str) -> Any:
    """Return the decoded arguments of the named function call.

    The arguments are returned as decoded JSON without any shape guarantees;
    callers validate them.

    Raises:
        AnalysisParseError: If no such call exists or its arguments are not JSON.
    """
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) == "function_call" and getattr(item, "name", None) == tool_name:
            raw = getattr(item, "arguments", None) or ""
            try:
                return json.loads(raw)
            except (TypeError, ValueError) as exc:
                raise AnalysisParseError(f"Arguments for '{tool_name}' are not valid JSON.") from exc
    raise AnalysisParseError(f"No function_call output for '{tool_name}' found in Responses API output.")


def extract_text(response: Any) -> str:
    """Return the concatenated output text of a response, or an empty string."""
    text = getattr(response, "output_text", None)
    if isinstance(text, str) and text:
        return text
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "output_text":
                return getattr(content, "text", "") or ""
    return ""


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage information from the response, if present."""
    usage = getattr(response, "usage", None)
    return {
        "input_tokens": getattr(usage, "input_tokens", None) if usage else None,
        "output_tokens": getattr(usage, "output_tokens", None) if usage else None,
    }
