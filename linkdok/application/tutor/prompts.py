"""Prompt assembly for the tutor."""

from typing import Any, Dict, List, Sequence, Union

from linkdok.core.models import Attachment, AttachmentKind, ChatMessage, ResourceContent

TUTOR_WITH_MATERIALS = (
    "You are a knowledgeable AI tutor with access to the student's study materials. "
    "Answer concisely and accurately. When relevant, cite which resource you used. "
    "Use ## headings, - bullet points, **bold** for key terms. "
    "Be direct, no unnecessary preamble."
)

TUTOR_WITHOUT_MATERIALS = (
    "You are a knowledgeable AI tutor. Answer clearly and concisely using your knowledge. "
    "Use ## headings, - bullet points, **bold** for key terms."
)

PLAYGROUND = (
    "You are a helpful, knowledgeable, and friendly AI assistant. "
    "Answer any question the user asks clearly and accurately. "
    "For technical questions use code blocks with syntax highlighting. "
    "Use ## headings, - bullet points, and **bold** for key terms where helpful. "
    "Be direct and avoid unnecessary preamble. Never refuse reasonable questions."
)


def combine_resources(
    resources: Sequence[ResourceContent],
    max_resource_chars: int = 15000,
    max_total_chars: int = 60000,
) -> str:
    """Join successfully extracted resources into one study-materials block."""
    usable = [r for r in resources if r.success and r.extracted_text]
    blocks = [
        f"=== RESOURCE {i}: {r.url} ===\n{r.extracted_text[:max_resource_chars]}"
        for i, r in enumerate(usable, start=1)
    ]
    return "\n\n".join(blocks)[:max_total_chars]


def tutor_user_prompt(question: str, materials: str) -> str:
    if not materials.strip():
        return question
    return (
        f"STUDY MATERIALS:\n{materials}\n\nQUESTION: {question}\n\n"
        "Answer using the materials when relevant, your knowledge otherwise."
    )


def build_user_content(
    text: str, attachments: Sequence[Attachment] = ()
) -> Union[str, List[Dict[str, Any]]]:
    """
    Fold attachments into the user turn.

    Images become ``image_url`` parts after the text part; text files are
    appended inline to the text part as fenced blocks. Content with no image
    parts collapses back to a plain string.
    """
    if not attachments:
        return text

    text_part = {"type": "text", "text": text}
    content: List[Dict[str, Any]] = [text_part]
    for attachment in attachments:
        if attachment.kind == AttachmentKind.IMAGE:
            content.append({"type": "image_url", "image_url": {"url": attachment.payload}})
        elif attachment.kind == AttachmentKind.TEXT:
            text_part["text"] += f"\n\n[Attached: {attachment.name}]\n```\n{attachment.payload}\n```"

    return text_part["text"] if len(content) == 1 else content


def history_suffix(history: Sequence[ChatMessage], window: int) -> List[Dict[str, Any]]:
    """Role and content of the last ``window`` turns."""
    if window <= 0:
        return []
    return [message.to_dict() for message in list(history)[-window:]]


def build_messages(
    system_prompt: str,
    history: Sequence[ChatMessage],
    window: int,
    user_content: Union[str, List[Dict[str, Any]]],
) -> List[Dict[str, Any]]:
    return [
        {"role": "system", "content": system_prompt},
        *history_suffix(history, window),
        {"role": "user", "content": user_content},
    ]
