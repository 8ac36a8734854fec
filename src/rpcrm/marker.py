"""
Record markers delimit the fragments of an RPC message sent over a byte
stream transport (RFC 5531, section 11). Each fragment is preceded by a
four byte marker in network byte order.

.. code-block:: console

    +------+-------------------------------+----------------------+
    |  31  |  30 .. 0                      |                      |
    +------+-------------------------------+----------------------+
    | last |  Fragment_Length              |  DATA ....           |
    | bit  |  uint31                       |                      |
    +------+-------------------------------+----------------------+

The last bit is set on the final fragment of a record.
"""

import struct

from typing import BinaryIO, Tuple

from rpcrm.errors import ShortReadError, ShortWriteError

RECORD_MARKER_FORMAT = "!I"
RECORD_MARKER_SIZE = struct.calcsize(RECORD_MARKER_FORMAT)

LAST_FRAGMENT_FLAG = 0x80000000
MAX_FRAGMENT_LENGTH = 2 ** 31 - 1


def encode_marker(length: int, last: bool) -> int:
    """ Return the 32 bit record marker for a fragment.

    :param length: the number of payload bytes in the fragment.

    :param last: a flag indicating whether this is the final fragment of
      the record.

    :raises ValueError: if the length does not fit in 31 bits.
    """
    if not 0 <= length <= MAX_FRAGMENT_LENGTH:
        raise ValueError(
            f"fragment length must be in the range 0..{MAX_FRAGMENT_LENGTH}, "
            f"got {length}"
        )

    marker = length
    if last:
        marker |= LAST_FRAGMENT_FLAG
    return marker


def decode_marker(marker: int) -> Tuple[int, bool]:
    """ Return the fragment length and last fragment flag held in a marker """
    length = marker & MAX_FRAGMENT_LENGTH
    last = (marker >> 31) == 1
    return length, last


def read_exactly(stream: BinaryIO, size: int) -> bytes:
    """ Read exactly ``size`` bytes from a stream.

    Streams are allowed to return fewer bytes than requested (e.g. a raw
    socket file) so reads are repeated until the requested amount has been
    collected or the stream reports end of file.

    :raises ShortReadError: if the stream ends first.
    """
    data = bytearray()
    while len(data) < size:
        chunk = stream.read(size - len(data))
        if not chunk:
            raise ShortReadError(len(data), size)
        data.extend(chunk)
    return bytes(data)


def write_all(stream: BinaryIO, data: bytes) -> None:
    """ Write all of ``data`` to a stream.

    :raises ShortWriteError: if the stream reports that it accepted fewer
      bytes than it was given.
    """
    written = stream.write(data)
    # Buffered streams return None or the full count.
    if written is not None and written != len(data):
        raise ShortWriteError(written, len(data))


def read_marker(stream: BinaryIO) -> Tuple[int, bool]:
    """ Read a record marker from a stream.

    :returns: a tuple of the fragment length and the last fragment flag.

    :raises ShortReadError: if fewer than four bytes could be read.
    """
    data = read_exactly(stream, RECORD_MARKER_SIZE)
    (marker,) = struct.unpack(RECORD_MARKER_FORMAT, data)
    return decode_marker(marker)


def write_marker(stream: BinaryIO, length: int, last: bool) -> None:
    """ Write a record marker to a stream.

    :raises ValueError: if the length does not fit in 31 bits.

    :raises ShortWriteError: if the marker could not be written in full.
    """
    marker = encode_marker(length, last)
    write_all(stream, struct.pack(RECORD_MARKER_FORMAT, marker))
