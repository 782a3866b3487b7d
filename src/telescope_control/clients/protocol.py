"""Binary message codec for the telescope server protocol.

Telescope servers (remote, or spawned locally for a serial device) speak
a small little-endian binary protocol. Every message starts with a
4-byte header:

    LENGTH (uint16)  total message length in bytes, header included
    TYPE   (uint16)  message type

Type 0 is the only message defined in each direction:

Goto, client -> server (20 bytes):
    TIME (int64)   client time, microseconds since the epoch
    RA   (uint32)  0x100000000 = 24h
    DEC  (int32)   0x40000000 = +90 degrees

Current position, server -> client (24 bytes):
    TIME   (int64)
    RA     (uint32)
    DEC    (int32)
    STATUS (int32)  0 = OK

Messages of unknown type are skipped using their LENGTH field, so servers
may add messages without breaking older clients.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from telescope_control.clients.types import TelescopeClientError
from telescope_control.utils.coordinates import RaDec

HEADER = struct.Struct("<HH")
GOTO = struct.Struct("<HHqIi")
CURRENT_POSITION = struct.Struct("<HHqIii")

MESSAGE_TYPE_POSITION = 0
MESSAGE_TYPE_GOTO = 0
MAX_MESSAGE_LENGTH = 256

_FULL_CIRCLE = 0x100000000
_QUARTER_CIRCLE = 0x40000000


class ProtocolError(TelescopeClientError):
    """Raised when the byte stream from a server cannot be decoded."""


@dataclass(frozen=True)
class PositionMessage:
    """Decoded current-position message."""

    time_us: int
    coords: RaDec
    status: int


def encode_ra(ra_degrees: float) -> int:
    return int(round(ra_degrees % 360.0 / 360.0 * _FULL_CIRCLE)) % _FULL_CIRCLE


def encode_dec(dec_degrees: float) -> int:
    return int(round(dec_degrees / 360.0 * _FULL_CIRCLE))


def decode_ra(value: int) -> float:
    return value * 360.0 / _FULL_CIRCLE


def decode_dec(value: int) -> float:
    return value * 360.0 / _FULL_CIRCLE


def encode_goto(target: RaDec, time_us: int) -> bytes:
    """Encode a goto message for ``target``.

    Example:
        >>> len(encode_goto(RaDec(ra=180.0, dec=45.0), 0))
        20
    """
    return GOTO.pack(
        GOTO.size,
        MESSAGE_TYPE_GOTO,
        time_us,
        encode_ra(target.ra),
        encode_dec(target.dec),
    )


def encode_position(coords: RaDec, time_us: int, status: int = 0) -> bytes:
    """Encode a current-position message (used by virtual servers and tests)."""
    return CURRENT_POSITION.pack(
        CURRENT_POSITION.size,
        MESSAGE_TYPE_POSITION,
        time_us,
        encode_ra(coords.ra),
        encode_dec(coords.dec),
        status,
    )


def decode_position(message: bytes) -> PositionMessage:
    """Decode one complete current-position message.

    Raises:
        ProtocolError: If the message has the wrong size or the
            declination is outside +/-90 degrees.
    """
    if len(message) != CURRENT_POSITION.size:
        raise ProtocolError(
            f"Position message must be {CURRENT_POSITION.size} bytes, got {len(message)}"
        )
    _, _, time_us, ra, dec, status = CURRENT_POSITION.unpack(message)
    if abs(dec) > _QUARTER_CIRCLE:
        raise ProtocolError(f"Declination out of range: {dec:#x}")
    return PositionMessage(
        time_us=time_us,
        coords=RaDec(ra=decode_ra(ra), dec=decode_dec(dec)),
        status=status,
    )


class MessageBuffer:
    """Reassembles messages from a byte stream.

    Bytes arrive in arbitrary chunks from sockets and serial lines;
    ``feed`` keeps partial messages until the rest arrives.

    Example:
        >>> buffer = MessageBuffer()
        >>> data = encode_position(RaDec(ra=10.0, dec=20.0), 0)
        >>> buffer.feed(data[:10])
        []
        >>> [round(m.coords.dec, 6) for m in buffer.feed(data[10:])]
        [20.0]
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete message."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[PositionMessage]:
        """Add ``data`` and return every complete position message.

        Raises:
            ProtocolError: On an impossible LENGTH field or a malformed
                position message. The buffer is left as it was at the
                failing message; the stream cannot be resynchronized.
        """
        self._buffer.extend(data)
        messages: list[PositionMessage] = []

        while len(self._buffer) >= HEADER.size:
            length, message_type = HEADER.unpack_from(self._buffer)
            if not HEADER.size <= length <= MAX_MESSAGE_LENGTH:
                raise ProtocolError(f"Invalid message length {length}")
            if len(self._buffer) < length:
                break

            message = bytes(self._buffer[:length])
            if message_type == MESSAGE_TYPE_POSITION:
                decoded = decode_position(message)
                messages.append(decoded)
            del self._buffer[:length]

        return messages
