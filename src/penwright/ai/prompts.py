"""Prompt templates for the article transform actions."""

from __future__ import annotations

from typing import Any, Dict, List

from .types import ActionKind, TransformRequest

__all__ = ["action_prompt", "build_messages", "system_prompt"]

_ROLE_MAP = {"user": "user", "ai": "assistant", "system": "system"}


def system_prompt() -> str:
    """Instructions shared by every request.

    The collaborator must answer with a single JSON object so the gateway can
    tell a conversational reply from a proposed edit.
    """
    return """You are a writing assistant embedded in a blog article editor.
You help the author improve, expand, summarize, correct and draft articles written in Markdown.

Always answer with a single JSON object and nothing else:
{"type": "edit", "result": "<replacement text>"}
    when the author asked you to change the text. "result" replaces the text you were given
    exactly, so return the full rewritten passage without commentary, quotes or code fences.
{"type": "reply", "result": "<answer>"}
    when the author asked a question or the request does not call for changing the text.

Rules:
- Keep the author's tone and Markdown formatting unless told otherwise.
- When only a fragment of the article was sent, edit that fragment only.
- Never invent facts about the author."""


def action_prompt(request: TransformRequest) -> str:
    """Return the user prompt for ``request.action``."""

    text = request.input_text
    action = request.action
    if action is ActionKind.IMPROVE:
        return (
            "Improve the following text by enhancing clarity, flow, and engagement while maintaining "
            "the original meaning. Keep the same tone and format (markdown if present). "
            "Return only the improved text, no explanations:\n\n" + text
        )
    if action is ActionKind.EXPAND:
        return (
            "Expand and add more detail to the following text. Add relevant examples, explanations, "
            "or supporting points. Maintain the same style and format. Return only the expanded text:\n\n"
            + text
        )
    if action is ActionKind.SUMMARIZE:
        return (
            "Summarize the following text concisely while keeping the key points and main ideas. "
            "Return only the summary in the same format:\n\n" + text
        )
    if action is ActionKind.FIX_GRAMMAR:
        return (
            "Fix all grammar, spelling, and punctuation errors in the following text. Only fix errors, "
            "do not change the style or content. Return only the corrected text:\n\n" + text
        )
    if action is ActionKind.GENERATE:
        topic = (request.document_title or "").strip() or text
        return (
            f'Generate a well-structured blog article about: "{topic}".\n'
            "Write in an engaging, conversational tone suitable for a developer blog.\n"
            "Include:\n"
            "- An engaging introduction\n"
            "- 2-3 main sections with clear headings (use ## for headings)\n"
            "- Relevant examples or insights\n"
            "- A conclusion\n\n"
            "Return the content in Markdown format."
        )
    prompt = (request.custom_prompt or "").strip()
    body = text or "(No content provided - generate from scratch based on the instructions above)"
    return f"{prompt}\n\nContent to work with:\n{body}"


def build_messages(request: TransformRequest) -> List[Dict[str, Any]]:
    """Chat messages for an OpenAI-compatible completion call."""

    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt()}]
    if request.document_title:
        messages.append({"role": "system", "content": f"Article title: {request.document_title}"})
    for message in request.context_messages:
        context = message.as_context()
        messages.append({"role": _ROLE_MAP.get(context["role"], "user"), "content": context["content"]})
    scope = "a selected fragment of the article" if request.is_partial else "the whole article"
    messages.append(
        {
            "role": "user",
            "content": f"The text below is {scope}.\n\n{action_prompt(request)}",
        }
    )
    return messages
