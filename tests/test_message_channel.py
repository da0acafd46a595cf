"""
Tests for MessageChannel - FIFO endpoint, fixed-size records and partial reads.
"""

import os
import stat
import struct

import pytest

from report_agent.core.exceptions import ChannelError, MalformedMessageError
from report_agent.models import RECORD_SIZE, ChannelMessage, MessageType
from report_agent.services.message_channel import MessageChannel


@pytest.fixture
def channel(settings):
    channel = MessageChannel(settings.channel_path)
    channel.open()
    yield channel
    channel.close()


def write_raw(path: str, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
    try:
        os.write(fd, data)
    finally:
        os.close(fd)


class TestEndpoint:
    def test_open_creates_fifo(self, channel, settings):
        mode = os.stat(settings.channel_path).st_mode

        assert stat.S_ISFIFO(mode)
        assert stat.S_IMODE(mode) == 0o666
        assert channel.is_open

    def test_open_replaces_regular_file(self, settings):
        with open(settings.channel_path, "w") as f:
            f.write("not a fifo")

        channel = MessageChannel(settings.channel_path)
        channel.open()
        try:
            assert stat.S_ISFIFO(os.stat(settings.channel_path).st_mode)
        finally:
            channel.close()

    def test_close_removes_endpoint(self, settings):
        channel = MessageChannel(settings.channel_path)
        channel.open()
        channel.close()

        assert not os.path.exists(settings.channel_path)
        assert not channel.is_open

    def test_receive_on_closed_channel(self, settings):
        assert MessageChannel(settings.channel_path).receive() is None


class TestSendReceive:
    def test_single_record(self, channel, settings):
        sent = ChannelMessage(
            type=MessageType.BACKUP_COMPLETE, sender_pid=4242, status=0, payload="done"
        )

        MessageChannel(settings.channel_path).send(sent)
        received = channel.receive()

        assert received == sent
        assert channel.receive() is None

    def test_records_arrive_in_order(self, channel, settings):
        sender = MessageChannel(settings.channel_path)
        for pid in (1, 2, 3):
            sender.send(ChannelMessage(type=MessageType.ERROR, sender_pid=pid, status=-1))

        pids = []
        while True:
            message = channel.receive()
            if message is None:
                break
            pids.append(message.sender_pid)

        assert pids == [1, 2, 3]

    def test_empty_channel_returns_none(self, channel):
        assert channel.receive() is None

    def test_send_without_reader_fails(self, settings):
        # Ingen daemon har åbnet kanalen
        with pytest.raises(ChannelError):
            MessageChannel(settings.channel_path).send(
                ChannelMessage(type=MessageType.BACKUP_START, sender_pid=1)
            )

    def test_send_to_fifo_without_reader_fails(self, settings):
        os.mkfifo(settings.channel_path)

        with pytest.raises(ChannelError):
            MessageChannel(settings.channel_path).send(
                ChannelMessage(type=MessageType.BACKUP_START, sender_pid=1)
            )


class TestPartialRecords:
    def test_partial_record_is_buffered(self, channel, settings):
        record = ChannelMessage(
            type=MessageType.TRANSFER_COMPLETE, sender_pid=7, payload="moved"
        ).pack()

        write_raw(settings.channel_path, record[:1000])
        assert channel.receive() is None

        write_raw(settings.channel_path, record[1000:])
        message = channel.receive()

        assert message is not None
        assert message.type is MessageType.TRANSFER_COMPLETE
        assert message.payload == "moved"

    def test_unknown_type_is_reported_and_skipped(self, channel, settings):
        bad = bytearray(ChannelMessage(type=MessageType.ERROR, sender_pid=9).pack())
        bad[0:4] = struct.pack("=i", 99)
        good = ChannelMessage(type=MessageType.BACKUP_START, sender_pid=10).pack()

        write_raw(settings.channel_path, bytes(bad) + good)

        with pytest.raises(MalformedMessageError):
            channel.receive()
        assert channel.receive().sender_pid == 10

    def test_record_size(self):
        assert RECORD_SIZE == 2060
