import asyncio
import binascii
import logging
import os

from typing import Optional, Tuple


logger = logging.getLogger(__name__)


def _host_port(info) -> Optional[Tuple[str, int]]:
    # AF_INET6 addresses are (host, port, flowinfo, scopeid) 4-tuples.
    if info is not None and len(info) == 4:
        host, port, _flowinfo, _scopeid = info
        info = (host, port)
    return info


class BaseStreamProtocol(asyncio.Protocol):
    """
    Connection bookkeeping shared by the stream protocols.

    This class tracks the transport, the local and remote addresses and a
    random identity for the peer, and reports the peer becoming available
    or unavailable. It does not delimit records; subclasses implement
    ``data_received`` and ``send``.
    """

    def __init__(
        self, on_record=None, on_peer_available=None, on_peer_unavailable=None, **kwargs
    ):
        """

        :param on_record: A callback function that will be passed each
          record that the protocol extracts from the stream.

        :param on_peer_available: A callback function that will be called when
          the protocol is connected with a transport.

        :param on_peer_unavailable: A callback function that will be called when
          the protocol has lost the connection with its transport.
        """
        self._on_record_handler = on_record
        self._on_peer_available_handler = on_peer_available
        self._on_peer_unavailable_handler = on_peer_unavailable
        self._remote_address = None  # type: Optional[Tuple[str, int]]
        self._local_address = None  # type: Optional[Tuple[str, int]]
        self._identity = b""

        self.transport = None

    @property
    def raddr(self) -> Optional[Tuple[str, int]]:
        """ Return the remote address the protocol is connected with """
        return self._remote_address

    @property
    def laddr(self) -> Optional[Tuple[str, int]]:
        """ Return the local address the protocol is using """
        return self._local_address

    @property
    def identity(self) -> bytes:
        """ Return the unique identifier assigned to the peer connection """
        return self._identity

    def _notify(self, handler, name: str, *args, **kwargs):
        # Don't let user code break the library
        if handler is None:
            return
        try:
            handler(self, self._identity, *args, **kwargs)
        except Exception:
            logger.exception(f"Error in {name} callback method")

    def connection_made(self, transport):
        self.transport = transport
        self._remote_address = _host_port(transport.get_extra_info("peername"))
        self._local_address = _host_port(transport.get_extra_info("sockname"))
        self._identity = binascii.hexlify(os.urandom(5))

        logger.debug(
            f"Connection made. id={self._identity}, "
            f"laddr={self._local_address}, raddr={self._remote_address}"
        )

        self._notify(self._on_peer_available_handler, "on_peer_available")

    def connection_lost(self, exc):
        logger.debug(
            f"Connection lost. id={self._identity}, "
            f"laddr={self._local_address}, raddr={self._remote_address}, "
            f"reason={exc}"
        )

        self._notify(self._on_peer_unavailable_handler, "on_peer_unavailable")

        if self.transport:
            self.transport.close()

        self.transport = None
        self._remote_address = None
        self._local_address = None
        self._identity = None

    def close(self):
        """ Close this connection. """
        logger.debug(
            f"Closing connection. id={self._identity}, "
            f"laddr={self._local_address}, raddr={self._remote_address}"
        )

        if self.transport:
            self.transport.close()

    def send(self, data: bytes, **kwargs):
        raise NotImplementedError
