"""
Protocol definitions for the chat relay.

This module defines the server-to-client messages and the line framing
used to turn received bytes into protocol lines.
"""

from typing import Iterable, List

from relay_common.constants import (
    ENCODING, LINE_TERMINATOR, PROMPT_MARKER, LINE_END_CHARS, RECV_BUFFER_SIZE
)


def create_nickname_prompt() -> str:
    """Create the one-time prompt sent to a freshly accepted connection."""
    return f"Enter nickname:{LINE_TERMINATOR}{PROMPT_MARKER}"


def create_nickname_taken_message() -> str:
    """Create the retry prompt sent when a nickname is already in use."""
    return f"Nickname taken, choose another:{LINE_TERMINATOR}{PROMPT_MARKER}"


def create_welcome_message(online_nicknames: Iterable[str]) -> str:
    """
    Create the welcome message for a newly registered client.

    ``online_nicknames`` are the other named clients in registry order.
    With nobody else online the "alone" message is returned instead of a
    zero count.
    """
    nicknames = list(online_nicknames)
    if not nicknames:
        return f"Welcome! You are the only user here.{LINE_TERMINATOR}"
    return (
        f"Welcome! {len(nicknames)} users online.{LINE_TERMINATOR}"
        f"Users: {', '.join(nicknames)}{LINE_TERMINATOR}"
    )


def create_user_joined_message(nickname: str) -> str:
    """Create user joined notification."""
    return f"{nickname} joined the chat{LINE_TERMINATOR}"


def create_user_left_message(nickname: str) -> str:
    """Create user left notification."""
    return f"{nickname} left the chat{LINE_TERMINATOR}"


def create_chat_message(nickname: str, text: str) -> str:
    """Create the relayed form of a chat line."""
    return f"{nickname}: {text}{LINE_TERMINATOR}"


def encode_message(message: str) -> bytes:
    """Encode an outgoing message for the wire."""
    return message.encode(ENCODING)


def decode_line(raw: bytes) -> str:
    """Decode one received line, replacing undecodable bytes."""
    return raw.decode(ENCODING, errors='replace')


def extract_first_line(data: bytes) -> str:
    """
    Treat one read as one message.

    Everything from the first ``\\r`` or ``\\n`` onwards is dropped, so
    ``b"hi\\r\\nthere"`` yields ``"hi"``. Data without a terminator is
    returned whole.
    """
    for index, byte in enumerate(data):
        if byte in LINE_END_CHARS:
            return decode_line(data[:index])
    return decode_line(data)


class LineBuffer:
    """
    Per-connection reassembly of received lines.

    A line ends at ``\\n``, ``\\r\\n`` or a lone ``\\r``. Bytes that do not
    yet form a complete line are kept until the next ``feed``. A fragment
    that grows past ``max_line_length`` without a terminator is flushed as
    a line of its own, cut on a UTF-8 character boundary.
    """

    def __init__(self, max_line_length: int = RECV_BUFFER_SIZE - 1):
        self.max_line_length = max_line_length
        self._buffer = bytearray()
        # Previous read ended in \r, so a leading \n belongs to that line
        self._skip_lf = False

    def feed(self, data: bytes) -> List[str]:
        """Append received bytes and return every line completed by them."""
        if self._skip_lf and data:
            if data[:1] == b'\n':
                data = data[1:]
            self._skip_lf = False

        self._buffer.extend(data)
        lines = []
        while True:
            end = self._find_terminator()
            if end < 0:
                break
            raw = bytes(self._buffer[:end])
            consumed = end + 1
            if self._buffer[end] == ord('\r'):
                if consumed < len(self._buffer):
                    if self._buffer[consumed] == ord('\n'):
                        consumed += 1
                else:
                    self._skip_lf = True
            del self._buffer[:consumed]
            lines.append(decode_line(raw))

        # Bound memory for peers that never send a terminator
        while len(self._buffer) > self.max_line_length:
            cut = self._character_boundary(self.max_line_length)
            lines.append(decode_line(bytes(self._buffer[:cut])))
            del self._buffer[:cut]
        return lines

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet part of a complete line."""
        return bytes(self._buffer)

    def _find_terminator(self) -> int:
        found = [i for i in (self._buffer.find(b'\r'), self._buffer.find(b'\n')) if i >= 0]
        return min(found, default=-1)

    def _character_boundary(self, limit: int) -> int:
        """Largest cut <= limit that does not split a UTF-8 sequence."""
        cut = limit
        while cut > 0 and (self._buffer[cut] & 0xC0) == 0x80:
            cut -= 1
        return cut or limit
