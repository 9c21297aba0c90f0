"""System prompt text and the per-turn page-context section."""

from __future__ import annotations

from typing import List, Sequence, Tuple

from ...snapshots.models import DiffResult, LargeDiff, NoPrevious, SmallDiff, Unchanged, UrlChanged

__all__ = [
    "BASE_SYSTEM_PROMPT",
    "DEFAULT_EXTRACTION_FAILURE_REASON",
    "compose_system_prompt",
    "build_page_context_prompt",
    "build_unavailable_page_prompt",
]

BASE_SYSTEM_PROMPT = """You are PageChat, a smart and friendly AI assistant that helps the user with the web page they are viewing.

Core principles:
- Be concise and conversational. Get to the point.
- Use markdown (headings, bold, lists, code blocks) to organize information clearly.
- Keep code snippets short and well-commented. Avoid very long lines; the chat panel is narrow.
- Be warm and approachable. You're a companion, not a corporate chatbot.

Page context:
- If you cannot read the page, explain that it might be a restricted browser page (e.g. chrome://) or the page hasn't finished loading.
- When page context IS available, reference it naturally; don't dump raw content back. Summarize, explain, and answer questions about it.
- NEVER fabricate or guess page content. If you haven't read specific chunks yet, say so and offer to read them.
- If the user navigates to a new page mid-conversation, acknowledge the change and offer to read the new page.

Response style:
- For simple questions, give brief direct answers.
- For complex topics, use structured markdown with headers.
- When the user says "explain" or "summarize", be thorough but organized.
- If unsure, ask a clarifying question rather than guessing."""

DEFAULT_EXTRACTION_FAILURE_REASON = (
    "The page might be restricted (e.g., chrome://) or the content script may not have loaded yet."
)


def compose_system_prompt(user_prompt: str | None = None, *, base: str = BASE_SYSTEM_PROMPT) -> str:
    """Append user/persona instructions to the base prompt."""

    extra = (user_prompt or "").strip()
    if not extra:
        return base
    return f"{base}\n\nAdditional user instructions:\n{extra}"


def build_page_context_prompt(
    *,
    url: str,
    title: str,
    total_chunks: int,
    previous_chunks: int | None,
    diff: DiffResult,
    editors: Sequence[Tuple[str, str]] = (),
    mode: str = "ask",
) -> str:
    """Describe the page, how to use the tools, and what changed since the last read.

    The returned text starts with a blank line so it can be appended to a system prompt.
    """

    edit_mode = mode == "edit"
    lines: List[str] = [
        "",
        "The user has enabled page context for their current browser tab.",
        "Page details:",
        f"- URL: {url}",
        f"- Title: {title}",
    ]
    if total_chunks > 0:
        lines.append(
            f"- The page content has been split into {total_chunks} chunks "
            f"(indices 0 to {total_chunks - 1})."
        )
    else:
        lines.append("- The page has no readable text content right now.")

    lines += [
        "",
        "**How to use your tools:**",
        "",
        "1. **Explore first**: Start by reading chunks [0, 1] to understand the page layout. Read more chunks as needed.",
        "2. **Act on targets**: Use the right tool:",
        "   - `read_page_chunks` to read specific sections of the page",
        "   - `read_editable_content` to read code editors and form fields",
    ]
    if edit_mode:
        lines += [
            "   - `write_editable_content` to type into fields or edit code",
            "3. **Verify when editing**: After using `write_editable_content`, you can re-read to confirm the change was applied.",
        ]
    lines += ["", "Common patterns:", "- **User asks about the page**: Read relevant chunks, summarize concisely."]
    if edit_mode:
        lines += [
            "- **User asks to fill a form / type something**: Check the editable areas listed below, "
            "then use `write_editable_content` with find='' to type into empty fields.",
            "- **User asks to edit code**: First `read_editable_content` to see the current code, "
            "then `write_editable_content` with the exact text to find and replace.",
        ]
    lines += [
        "- **User asks 'what changed'**: Use the diff information provided below.",
        "",
        "You can request multiple chunks at once. Do NOT read all chunks, only what you need.",
    ]

    if previous_chunks is not None:
        lines.append(
            f'You can also use source="previous" to read the previous version ({previous_chunks} chunks).'
        )

    if editors:
        lines += [
            "",
            "**Editable Areas Found:**",
            "The following text inputs/code editors were detected on screen:",
        ]
        lines += [f"- Key: '{key}' ({label})" for key, label in editors]
        lines += [
            "",
            "If the user asks about their code or what they are typing, use the `read_editable_content` "
            "tool with the specific keys to read them accurately.",
        ]
        if edit_mode:
            lines.append(
                "You can also EDIT or TYPE INTO these areas using the `write_editable_content` tool: specify "
                "the key, the exact text to find, and what to replace it with. To type into an empty field, "
                "use find='' and replace='your text'. Always read first before editing existing content."
            )

    lines += _describe_diff(diff)
    return "\n" + "\n".join(lines)


def build_unavailable_page_prompt(
    *,
    url: str,
    title: str,
    page_changed: bool = False,
    previous_url: str | None = None,
    reason: str | None = None,
) -> str:
    """Page-context section used when the page text could not be extracted."""

    text = f"\n\nThe user has page context enabled. Their current tab is: {title} ({url})."
    if page_changed:
        text += (
            f"\nIMPORTANT: The user has navigated to a DIFFERENT page since the last message "
            f"(was: {previous_url or 'unknown'}). Do NOT reference information from the previous page "
            "unless the user explicitly asks about it. If they ask about page content, tell them you "
            "need a moment to load the new page."
        )
    text += f"\nPage content could not be extracted. Reason: {reason or DEFAULT_EXTRACTION_FAILURE_REASON}"
    return text


def _describe_diff(diff: DiffResult) -> List[str]:
    if isinstance(diff, NoPrevious):
        return ["", "This is the first time reading this page; no previous version available."]
    if isinstance(diff, Unchanged):
        return [
            "",
            "The page content has NOT changed since your last read. No need to re-read unless the user "
            "asks about something specific you haven't read yet.",
        ]
    if isinstance(diff, SmallDiff):
        lines = [
            "",
            f"The page has been modified since your last read ({diff.changed_lines} lines changed out of "
            f"{diff.total_lines}). Here is a unified diff:",
            "",
            "```diff",
            diff.patch,
            "```",
            "",
            "Use this diff to understand what changed.",
        ]
        if diff.changed_chunks:
            lines.append(f"If you need more context, the changes are in {_chunk_list(diff.changed_chunks)}.")
        return lines
    if isinstance(diff, LargeDiff):
        lines = [
            "",
            f"The page content has changed significantly since your last read ({diff.changed_lines} lines "
            f"changed out of {diff.total_lines}). The diff is too large to include.",
        ]
        if diff.changed_chunks:
            lines.append(f"Changes are in {_chunk_list(diff.changed_chunks)}; you can read those if needed.")
        return lines
    if isinstance(diff, UrlChanged):
        return [
            "",
            f"The user has navigated to a different page (was: {diff.old_url}, now: {diff.new_url}). "
            'Use read_page_chunks with source="latest" to read the new page. You can still access the old '
            'page with source="previous" if the user refers to it.',
        ]
    return []


def _chunk_list(indices: Sequence[int]) -> str:
    noun = "chunks" if len(indices) > 1 else "chunk"
    return f"{noun} [{', '.join(str(index) for index in indices)}]"
