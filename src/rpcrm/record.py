"""
A record is one complete RPC message. On a stream transport it is sent as
one or more fragments, each preceded by a record marker. The final fragment
of a record has the last fragment flag set in its marker.

.. code-block:: console

    +--------+------------+--------+------------+
    | marker |  fragment  | marker |  fragment  |
    | last=0 |  DATA ...  | last=1 |  DATA ...  |
    +--------+------------+--------+------------+
    |<--------------- one record -------------->|

Fragments with a length of zero are invalid. Fragments at or above the
reader's maximum record size are discarded from the stream and rejected.
"""

import logging
import struct

from typing import BinaryIO, Iterator, Optional, Tuple

from rpcrm.errors import (
    FragmentTooLargeError,
    ShortReadError,
    ZeroLengthFragmentError,
)
from rpcrm.marker import (
    MAX_FRAGMENT_LENGTH,
    RECORD_MARKER_FORMAT,
    encode_marker,
    read_exactly,
    read_marker,
    write_all,
    write_marker,
)

logger = logging.getLogger(__name__)


MAX_RECORD_SIZE = 32 * 1024

# Oversized fragments are discarded in chunks of this size
DISCARD_CHUNK_SIZE = 8192


class RecordReader(object):
    """
    Reassembles records from the fragments on a stream.

    A reader holds no per-stream state. It only carries the maximum record
    size policy, so one reader may be shared by many connections.
    """

    def __init__(self, max_record_size: int = MAX_RECORD_SIZE):
        """

        :param max_record_size: Fragments announcing a length at or above this
          value are rejected. Note that this bounds each fragment, not the
          total size of a record. Defaults to 32 KiB.
        """
        if not isinstance(max_record_size, int) or max_record_size < 2:
            raise ValueError(
                f"max_record_size must be an integer greater than 1, got {max_record_size!r}"
            )
        self.max_record_size = max_record_size

    def read(self, stream: BinaryIO) -> bytes:
        """ Read one complete record from a stream.

        :raises ShortReadError: if the stream ends inside the record.

        :raises ZeroLengthFragmentError: if a fragment has a length of zero.

        :raises FragmentTooLargeError: if a fragment is too large to accept.
        """
        return self._read(stream, eof_ok=False)

    def records(self, stream: BinaryIO) -> Iterator[bytes]:
        """ Yield records from a stream until it ends on a record boundary """
        while True:
            record = self._read(stream, eof_ok=True)
            if record is None:
                return
            yield record

    def _read(self, stream: BinaryIO, eof_ok: bool) -> Optional[bytes]:
        record = bytearray()
        fragments = 0

        while True:
            try:
                length, last = read_marker(stream)
            except ShortReadError as exc:
                if eof_ok and exc.got == 0 and fragments == 0:
                    logger.debug("Stream ended on a record boundary")
                    return None
                raise

            if length < 1:
                logger.error("Rejecting zero length fragment")
                raise ZeroLengthFragmentError()

            if length >= self.max_record_size:
                logger.error(
                    f"Fragment size ({length}) exceeds maximum record size "
                    f"({self.max_record_size}). Discarding fragment."
                )
                discarded, drain_error = discard(stream, length)
                raise FragmentTooLargeError(
                    length,
                    self.max_record_size,
                    discarded=discarded,
                    drain_error=drain_error,
                ) from drain_error

            record.extend(read_exactly(stream, length))
            fragments += 1
            logger.debug(f"Read fragment with {length} bytes, last={last}")

            if last:
                break

        logger.debug(f"Read record with {len(record)} bytes in {fragments} fragments")
        return bytes(record)


def discard(stream: BinaryIO, length: int) -> Tuple[int, Optional[OSError]]:
    """ Read and throw away ``length`` bytes from a stream.

    :returns: a tuple of the number of bytes discarded and the error that
      stopped the discard early, or None if every byte was discarded.
    """
    discarded = 0
    try:
        while discarded < length:
            chunk = stream.read(min(DISCARD_CHUNK_SIZE, length - discarded))
            if not chunk:
                raise ShortReadError(discarded, length)
            discarded += len(chunk)
    except OSError as exc:
        logger.error(f"Failed to discard fragment after {discarded} bytes: {exc}")
        return discarded, exc
    return discarded, None


def read_record(stream: BinaryIO, max_record_size: int = MAX_RECORD_SIZE) -> bytes:
    """ Read one complete record from a stream.

    See :meth:`RecordReader.read`.
    """
    return RecordReader(max_record_size).read(stream)


def iter_records(
    stream: BinaryIO, max_record_size: int = MAX_RECORD_SIZE
) -> Iterator[bytes]:
    """ Yield records from a stream until it ends cleanly.

    A stream that ends part way through a marker or fragment raises
    ShortReadError rather than stopping the iteration.
    """
    return RecordReader(max_record_size).records(stream)


def write_reply(stream: BinaryIO, payload: bytes) -> None:
    """ Write a payload as a record holding a single, final fragment.

    The payload is not split so it must fit within whatever maximum record
    size the peer enforces. Use :func:`write_record` to send larger payloads.
    """
    write_marker(stream, len(payload), True)
    write_all(stream, payload)
    logger.debug(f"Wrote reply with {len(payload)} bytes")


def frame_record(payload: bytes, max_fragment_size: int = MAX_RECORD_SIZE - 1) -> bytes:
    """ Return the wire representation of a record.

    :param payload: the record content. Must contain at least one byte.

    :param max_fragment_size: the largest fragment to emit. Defaults to the
      largest fragment a reader using the default maximum record size
      accepts.
    """
    if not payload:
        raise ValueError("record must contain at least 1 byte")

    if not 1 <= max_fragment_size <= MAX_FRAGMENT_LENGTH:
        raise ValueError(
            f"max_fragment_size must be in the range 1..{MAX_FRAGMENT_LENGTH}, "
            f"got {max_fragment_size}"
        )

    view = memoryview(payload)
    frames = bytearray()
    for offset in range(0, len(view), max_fragment_size):
        fragment = view[offset : offset + max_fragment_size]
        last = offset + max_fragment_size >= len(view)
        frames.extend(
            struct.pack(RECORD_MARKER_FORMAT, encode_marker(len(fragment), last))
        )
        frames.extend(fragment)
    return bytes(frames)


def write_record(
    stream: BinaryIO, payload: bytes, max_fragment_size: int = MAX_RECORD_SIZE - 1
) -> None:
    """ Write a payload as a record, splitting it into as many fragments as
    needed to keep each one within ``max_fragment_size`` bytes.
    """
    write_all(stream, frame_record(payload, max_fragment_size))
    logger.debug(f"Wrote record with {len(payload)} bytes")
