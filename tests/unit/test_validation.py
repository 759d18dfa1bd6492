"""Unit tests for chat payload validation."""

import pytest

from linkdok.api.security import validate_messages

def test_valid_payload():
    messages = [
        {"role": "system", "content": "You are a tutor."},
        {"role": "user", "content": "Hello"},
        {"role": "assistant", "content": "Hi!"},
    ]
    assert validate_messages(messages) is None

def test_multipart_content_is_measured_serialized():
    messages = [{
        "role": "user",
        "content": [
            {"type": "text", "text": "What is in this picture?"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        ],
    }]
    assert validate_messages(messages) is None

@pytest.mark.parametrize("payload", [None, "hello", {"role": "user"}, 42])
def test_not_a_list(payload):
    assert validate_messages(payload) == "messages must be an array"

def test_empty_list():
    assert validate_messages([]) == "messages array is empty"

def test_too_many_messages():
    messages = [{"role": "user", "content": "hi"}] * 31
    assert validate_messages(messages) == "Too many messages (max 30)"

def test_exactly_max_messages_is_allowed():
    messages = [{"role": "user", "content": "hi"}] * 30
    assert validate_messages(messages) is None

def test_non_object_message():
    assert validate_messages(["hello"]) == "Invalid message object"
    assert validate_messages([None]) == "Invalid message object"

def test_invalid_role():
    error = validate_messages([{"role": "tool", "content": "x"}])
    assert error == 'Invalid role "tool"'

def test_missing_role():
    assert validate_messages([{"content": "x"}]) == 'Invalid role "None"'

def test_unhashable_role():
    assert validate_messages([{"role": ["user"], "content": "x"}]).startswith("Invalid role")

def test_oversized_message():
    messages = [{"role": "user", "content": "x" * 800_001}]
    assert validate_messages(messages) == "Message too large (max 800000 characters)"

def test_message_at_size_limit_is_allowed():
    messages = [{"role": "user", "content": "x" * 800_000}]
    assert validate_messages(messages) is None

def test_custom_limits():
    messages = [{"role": "user", "content": "hello world"}] * 3
    assert validate_messages(messages, max_messages=2) == "Too many messages (max 2)"
    assert validate_messages(messages, max_chars=5) == "Message too large (max 5 characters)"

def test_first_violation_wins():
    messages = [
        {"role": "user", "content": "ok"},
        {"role": "robot", "content": "x" * 900_000},
    ]
    assert validate_messages(messages) == 'Invalid role "robot"'
