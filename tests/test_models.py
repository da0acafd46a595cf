"""
Tests for the channel record codec and urgent change payload parsing.
"""

import struct

import pytest

from report_agent.core.exceptions import MalformedMessageError
from report_agent.models import (
    MAX_PAYLOAD_BYTES,
    RECORD_FORMAT,
    RECORD_SIZE,
    ChannelMessage,
    JobKind,
    MessageType,
    UrgentChangeRequest,
)


class TestChannelMessage:
    def test_pack_layout(self):
        record = ChannelMessage(
            type=MessageType.URGENT_CHANGE, sender_pid=123, status=-1, payload="hi"
        ).pack()

        raw_type, pid, status, payload = struct.unpack(RECORD_FORMAT, record)
        assert len(record) == RECORD_SIZE
        assert (raw_type, pid, status) == (6, 123, -1)
        assert payload.startswith(b"hi\0")

    def test_long_payload_is_truncated_with_terminator(self):
        record = ChannelMessage(
            type=MessageType.ERROR, sender_pid=1, payload="x" * 5000
        ).pack()

        message = ChannelMessage.unpack(record)
        assert len(message.payload) == MAX_PAYLOAD_BYTES - 1
        assert record[-1:] == b"\0"

    def test_wrong_record_size(self):
        with pytest.raises(MalformedMessageError):
            ChannelMessage.unpack(b"\0" * 10)

    def test_unknown_type(self):
        record = struct.pack(RECORD_FORMAT, 42, 1, 0, b"")

        with pytest.raises(MalformedMessageError):
            ChannelMessage.unpack(record)

    def test_invalid_utf8_is_replaced(self):
        record = struct.pack(RECORD_FORMAT, 5, 1, 0, b"bad \xff byte")

        assert ChannelMessage.unpack(record).payload == "bad � byte"

    def test_message_type_values(self):
        assert [int(t) for t in MessageType] == [1, 2, 3, 4, 5, 6]

    def test_job_completion_types(self):
        assert JobKind.TRANSFER.completion_type is MessageType.TRANSFER_COMPLETE
        assert JobKind.BACKUP.completion_type is MessageType.BACKUP_COMPLETE


class TestUrgentChangeRequest:
    def test_parse(self):
        request = UrgentChangeRequest.parse("Sales.xml|alice|<report>new</report>")

        assert request == UrgentChangeRequest("Sales.xml", "alice", "<report>new</report>")

    def test_content_may_contain_separator(self):
        request = UrgentChangeRequest.parse("a.xml|bob|x|y|z")

        assert request.content == "x|y|z"

    def test_empty_content_is_allowed(self):
        assert UrgentChangeRequest.parse("a.xml|bob|").content == ""

    @pytest.mark.parametrize(
        "payload,reason",
        [
            ("no separators at all", "missing separator"),
            ("a.xml|bob", "missing content"),
        ],
    )
    def test_malformed_payload(self, payload, reason):
        with pytest.raises(MalformedMessageError, match=reason):
            UrgentChangeRequest.parse(payload)

    @pytest.mark.parametrize("filename", ["", ".", "..", "../etc/passwd", "sub/a.xml"])
    def test_rejects_unsafe_filenames(self, filename):
        with pytest.raises(MalformedMessageError):
            UrgentChangeRequest.parse(f"{filename}|bob|content")
