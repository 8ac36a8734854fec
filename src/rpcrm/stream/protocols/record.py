import enum
import logging
import struct

from rpcrm.marker import RECORD_MARKER_FORMAT, RECORD_MARKER_SIZE, decode_marker
from rpcrm.record import MAX_RECORD_SIZE, frame_record
from .base import BaseStreamProtocol

logger = logging.getLogger(__name__)


class ProtocolStates(enum.Enum):
    WAIT_MARKER = 0
    WAIT_FRAGMENT = 1


class RecordMarkingStreamProtocol(BaseStreamProtocol):
    """
    The record marking protocol delimits RPC messages on a stream transport
    as described in RFC 5531, section 11. Each message (a record) is sent as
    one or more fragments. Every fragment is preceded by a uint32 marker
    whose top bit flags the final fragment of the record and whose
    remaining 31 bits hold the fragment length.

    .. code-block:: console

        +-------------------------------+--------------------+
        |             marker            |  fragment          |
        +-------------------------------+--------------------+
        | Last_Flag | Fragment_Length   |  DATA ....         |
        |   1 bit   |     31 bits       |                    |
        |-----------|-------------------|--------------------|

    Fragments with a length of zero, or a length at or above the maximum
    record size, are invalid and cause the connection to be closed.

    Once the final fragment of a record is received the protocol passes the
    reassembled record to the on_record handler.
    """

    def __init__(
        self,
        on_record=None,
        on_peer_available=None,
        on_peer_unavailable=None,
        max_record_size: int = MAX_RECORD_SIZE,
        **kwargs,
    ):
        super().__init__(
            on_record=on_record,
            on_peer_available=on_peer_available,
            on_peer_unavailable=on_peer_unavailable,
        )
        if not isinstance(max_record_size, int) or max_record_size < 2:
            raise ValueError(
                f"max_record_size must be an integer greater than 1, got {max_record_size!r}"
            )
        self.max_record_size = max_record_size
        self._buffer = bytearray()
        self._record = bytearray()
        self._state = ProtocolStates.WAIT_MARKER
        self._fragment_len = 0
        self._last = False

    def send(self, data: bytes, **kwargs):
        """ Send a record by writing it to the transport.

        Records larger than the maximum record size are split into several
        fragments.

        :param data: a bytes object containing the record payload.
        """
        if not isinstance(data, bytes):
            logger.error(f"data must be bytes - can't send record. data={type(data)}")
            return

        if not data:
            logger.error("data must contain at least 1 byte - can't send record")
            return

        msg = frame_record(data, self.max_record_size - 1)

        logger.debug(f"Sending record with {len(msg)} bytes")

        self.transport.write(msg)

    def _reject(self, reason: str):
        logger.error(f"{reason}. Disconnecting peer {self._identity}.")
        self._buffer.clear()
        self._record.clear()
        self._state = ProtocolStates.WAIT_MARKER
        self.close()

    def data_received(self, data):
        """ Process some bytes received from the transport.

        Received bytes are added to a buffer from which fragments are
        extracted. The parser switches between waiting for a marker and
        waiting for a fragment payload. Fragment payloads accumulate until
        the final fragment of a record arrives.

        This method supports receiving a single byte at a time as well as
        receiving several records at once.
        """
        self._buffer.extend(data)

        while self._buffer:
            if self._state == ProtocolStates.WAIT_MARKER:
                if len(self._buffer) < RECORD_MARKER_SIZE:
                    break

                (marker,) = struct.unpack(
                    RECORD_MARKER_FORMAT, self._buffer[:RECORD_MARKER_SIZE]
                )
                length, last = decode_marker(marker)

                if length < 1:
                    self._reject("Fragment size is zero")
                    break

                if length >= self.max_record_size:
                    self._reject(
                        f"Fragment size ({length}) exceeds maximum record size "
                        f"({self.max_record_size})"
                    )
                    break

                del self._buffer[:RECORD_MARKER_SIZE]
                self._fragment_len = length
                self._last = last
                self._state = ProtocolStates.WAIT_FRAGMENT

            elif self._state == ProtocolStates.WAIT_FRAGMENT:
                if len(self._buffer) < self._fragment_len:
                    break

                self._record.extend(self._buffer[: self._fragment_len])
                del self._buffer[: self._fragment_len]
                self._state = ProtocolStates.WAIT_MARKER

                if self._last:
                    record = bytes(self._record)
                    self._record.clear()
                    logger.debug(f"Received record with {len(record)} bytes")
                    self._notify(self._on_record_handler, "on_record", record)
