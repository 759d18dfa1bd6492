"""Unit tests for prompt assembly."""

from linkdok.application.tutor import prompts
from linkdok.core.models import Attachment, AttachmentKind, ChatMessage, ResourceContent

def test_combine_resources_numbers_usable_resources(sample_resources):
    materials = prompts.combine_resources(sample_resources)

    assert materials.startswith("=== RESOURCE 1: https://example.com/closures ===\nA closure")
    assert "=== RESOURCE 2: https://example.com/event-loop ===" in materials
    assert "broken" not in materials

def test_combine_resources_truncates_each_resource():
    resources = [ResourceContent(url="u", extracted_text="x" * 100)]
    materials = prompts.combine_resources(resources, max_resource_chars=10)
    assert materials == "=== RESOURCE 1: u ===\n" + "x" * 10

def test_combine_resources_caps_total_length():
    resources = [ResourceContent(url=f"u{i}", extracted_text="y" * 50) for i in range(10)]
    assert len(prompts.combine_resources(resources, max_total_chars=120)) == 120

def test_combine_resources_empty():
    assert prompts.combine_resources([]) == ""

def test_tutor_prompt_without_materials_is_the_question():
    assert prompts.tutor_user_prompt("Why?", "  ") == "Why?"

def test_tutor_prompt_with_materials():
    text = prompts.tutor_user_prompt("Why?", "notes")
    assert text.startswith("STUDY MATERIALS:\nnotes\n\nQUESTION: Why?")

def test_user_content_without_attachments_is_text():
    assert prompts.build_user_content("hello") == "hello"

def test_text_attachments_are_inlined():
    attachment = Attachment(kind=AttachmentKind.TEXT, payload="print(1)", name="main.py")

    content = prompts.build_user_content("Review this", [attachment])

    assert content == "Review this\n\n[Attached: main.py]\n```\nprint(1)\n```"

def test_images_become_parts_after_text():
    image = Attachment(kind=AttachmentKind.IMAGE, payload="data:image/png;base64,AAA")
    note = Attachment(kind=AttachmentKind.TEXT, payload="context", name="notes.txt")

    content = prompts.build_user_content("Look", [image, note])

    assert content[0]["type"] == "text"
    assert content[0]["text"].startswith("Look\n\n[Attached: notes.txt]")
    assert content[1] == {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAA"}}

def test_history_suffix():
    history = [ChatMessage(role="user", content=str(i)) for i in range(5)]

    assert prompts.history_suffix(history, 2) == [
        {"role": "user", "content": "3"},
        {"role": "user", "content": "4"},
    ]
    assert prompts.history_suffix(history, 0) == []
    assert len(prompts.history_suffix(history, 50)) == 5

def test_build_messages_order():
    history = [ChatMessage(role="assistant", content="earlier")]

    messages = prompts.build_messages("system", history, 8, "now")

    assert messages == [
        {"role": "system", "content": "system"},
        {"role": "assistant", "content": "earlier"},
        {"role": "user", "content": "now"},
    ]
