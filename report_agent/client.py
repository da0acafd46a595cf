"""
Command client - asks a running daemon for a backup, a transfer or a status line.

Writes a single channel record, exactly like a worker does:

    report-agent-send backup
    report-agent-send transfer
    report-agent-send status
"""

import argparse
import os
import sys
from typing import List, Optional

from rich.console import Console

from .core.exceptions import ChannelError
from .dependencies import get_settings
from .models import ChannelMessage, MessageType
from .services.message_channel import MessageChannel

COMMANDS = {
    "backup": MessageType.BACKUP_START,
    "transfer": MessageType.TRANSFER_START,
    "status": MessageType.ERROR,  # status == 0 betyder status-forespørgsel
}

console = Console()


def build_message(command: str) -> ChannelMessage:
    return ChannelMessage(
        type=COMMANDS[command],
        sender_pid=os.getpid(),
        status=0,
        payload=f"Command from client: {command}",
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="report-agent-send", description="Send a command to the report agent daemon"
    )
    parser.add_argument("command", help="backup, transfer or status")
    parser.add_argument("--channel", help="Channel path (default from settings)")
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        console.print(f"[red]Unknown command:[/] {args.command}")
        console.print(f"Commands: {', '.join(COMMANDS)}")
        return 1

    channel = MessageChannel(args.channel or get_settings().channel_path)
    try:
        channel.send(build_message(args.command))
    except ChannelError as e:
        console.print(f"[red]Failed to send command:[/] {e}")
        return 1

    console.print(f"[green]Command sent successfully:[/] {args.command}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
