"""Function declarations advertised to the model, per agent mode."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

__all__ = [
    "READ_PAGE_CHUNKS",
    "READ_EDITABLE_CONTENT",
    "WRITE_EDITABLE_CONTENT",
    "READ_DECLARATIONS",
    "WRITE_DECLARATION",
    "ASK_TOOLS",
    "EDIT_TOOLS",
    "tools_for_mode",
    "declared_tool_names",
]

READ_PAGE_CHUNKS = "read_page_chunks"
READ_EDITABLE_CONTENT = "read_editable_content"
WRITE_EDITABLE_CONTENT = "write_editable_content"

_SOURCE_ENUM = ["latest", "previous"]

READ_DECLARATIONS: List[Dict[str, Any]] = [
    {
        "name": READ_PAGE_CHUNKS,
        "description": (
            "Read specific chunks of the user's web page content. The page has been split into "
            "numbered chunks. Use the 'source' parameter to choose between the current page "
            "('latest') or the previous version ('previous')."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "source": {
                    "type": "string",
                    "enum": list(_SOURCE_ENUM),
                    "description": (
                        "Which version to read from: 'latest' (current page) or 'previous' "
                        "(page state from last message). Defaults to 'latest'."
                    ),
                },
                "indices": {
                    "type": "array",
                    "items": {"type": "integer"},
                    "description": "Chunk indices (0-based) to read",
                },
            },
            "required": ["indices"],
        },
    },
    {
        "name": READ_EDITABLE_CONTENT,
        "description": (
            "Read the raw text content of a specific code editor, textarea, or rich-text input "
            "block found on the user's current page."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "source": {
                    "type": "string",
                    "enum": list(_SOURCE_ENUM),
                    "description": "Which page version to read from. Defaults to 'latest'.",
                },
                "keys": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": (
                        "The exact keys of the editable content to read (e.g., ['monaco_1', 'textarea_2'])."
                    ),
                },
            },
            "required": ["keys"],
        },
    },
]

WRITE_DECLARATION: Dict[str, Any] = {
    "name": WRITE_EDITABLE_CONTENT,
    "description": (
        "Edit text in a code editor, textarea, or input field on the user's page using search & "
        "replace. Specify the exact text to find and what to replace it with. To type into an empty "
        "field, use find='' (empty string) and replace='your text'. Preserves undo history."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "key": {
                "type": "string",
                "description": "The key of the editable to write to (e.g., 'input_1', 'monaco_1').",
            },
            "find": {
                "type": "string",
                "description": "The exact text to find. Use '' (empty string) to set the entire value.",
            },
            "replace": {
                "type": "string",
                "description": "The text to replace the found text with.",
            },
        },
        "required": ["key", "find", "replace"],
    },
}

ASK_TOOLS: List[Dict[str, Any]] = [{"functionDeclarations": READ_DECLARATIONS}]
EDIT_TOOLS: List[Dict[str, Any]] = [{"functionDeclarations": [*READ_DECLARATIONS, WRITE_DECLARATION]}]


def tools_for_mode(mode: str) -> List[Dict[str, Any]]:
    """Return the tool payload for ``"ask"`` (read-only) or ``"edit"`` mode."""

    return EDIT_TOOLS if mode == "edit" else ASK_TOOLS


def declared_tool_names(tools: List[Mapping[str, Any]]) -> set[str]:
    names: set[str] = set()
    for group in tools:
        for declaration in group.get("functionDeclarations", ()):
            names.add(str(declaration.get("name")))
    return names
