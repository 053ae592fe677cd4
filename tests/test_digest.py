# tests/test_digest.py
"""
Tests for message digests.

Verifies:
  - Identical messages digest identically; any change in role, text or
    part order changes the digest.
  - Differently-typed parts with the same text never collide.
  - Binary payloads are distinguished by content, not just size.
"""

from __future__ import annotations

from token_budget.digest import digest_message, digest_text, hash_data, hash_data_sampled
from token_budget.models import ChatMessage, DataPart, TextPart, ToolCallPart, ToolResultPart


class TestDigestMessage:
    def test_stable_for_equal_messages(self):
        assert ChatMessage.user("hello").digest() == ChatMessage.user("hello").digest()

    def test_role_changes_digest(self):
        assert ChatMessage.user("hello").digest() != ChatMessage.assistant("hello").digest()

    def test_text_changes_digest(self):
        assert ChatMessage.user("hello").digest() != ChatMessage.user("hello!").digest()

    def test_part_order_matters(self):
        a = ChatMessage(role="user", content=[TextPart(value="x"), TextPart(value="y")])
        b = ChatMessage(role="user", content=[TextPart(value="y"), TextPart(value="x")])
        assert a.digest() != b.digest()

    def test_type_discriminator_prevents_collisions(self):
        text = ChatMessage(role="user", content=[TextPart(value="42")])
        result = ChatMessage(
            role="user",
            content=[ToolResultPart(call_id="", content=[TextPart(value="42")])],
        )
        assert text.digest() != result.digest()

    def test_tool_call_input_is_part_of_digest(self):
        a = ChatMessage(role="assistant", content=[ToolCallPart(name="f", call_id="1", input={"q": "a"})])
        b = ChatMessage(role="assistant", content=[ToolCallPart(name="f", call_id="1", input={"q": "b"})])
        assert a.digest() != b.digest()

    def test_equal_size_images_differ(self):
        a = ChatMessage(role="user", content=[DataPart(mime_type="image/png", data=b"\x00" * 64)])
        b = ChatMessage(role="user", content=[DataPart(mime_type="image/png", data=b"\x01" * 64)])
        assert a.digest() != b.digest()


class TestHashData:
    def test_full_hash_sees_mid_payload_edit(self):
        original = bytearray(b"\x00" * 10_000)
        edited = bytearray(original)
        edited[5000] ^= 0xFF
        assert hash_data(bytes(original)) != hash_data(bytes(edited))

    def test_sampled_hash_reads_head_and_tail_only(self):
        head, tail = b"H" * 1024, b"T" * 1024
        a = head + b"a" * 10_000 + tail
        b = head + b"b" * 10_000 + tail
        assert hash_data_sampled(a) == hash_data_sampled(b)

    def test_sampled_hash_covers_small_payloads_fully(self):
        assert hash_data_sampled(b"abc") != hash_data_sampled(b"abd")


class TestBinaryPayloadEdits:
    def _image_message(self, data: bytes) -> ChatMessage:
        return ChatMessage(role="user", content=[DataPart(mime_type="image/png", data=data)])

    def test_mid_payload_edit_changes_message_digest(self):
        original = bytearray(b"\x00" * 10_000)
        edited = bytearray(original)
        edited[5000] = 1
        assert self._image_message(bytes(original)).digest() != self._image_message(bytes(edited)).digest()

    def test_sampled_message_digest_ignores_mid_payload_edit(self):
        original = bytearray(b"\x00" * 10_000)
        edited = bytearray(original)
        edited[5000] = 1
        sampled = [digest_message(self._image_message(bytes(d)), sample_data=True) for d in (original, edited)]
        assert sampled[0] == sampled[1]


def test_digest_text_is_short_and_stable():
    assert digest_text("hello") == digest_text("hello")
    assert len(digest_text("hello")) == 16
