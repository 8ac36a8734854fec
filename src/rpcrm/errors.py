""" This module contains the exceptions raised while framing records. """

from typing import Optional


class RecordMarkingError(Exception):
    """ Base class for record framing violations. """


class ProtocolError(RecordMarkingError):
    """ The byte stream does not hold a well formed sequence of fragments. """


class ZeroLengthFragmentError(ProtocolError):
    def __init__(self):
        super().__init__("fragment length must be at least one byte")


class FragmentTooLargeError(ProtocolError):
    """
    A fragment announced a length at or above the reader's maximum record
    size. The reader attempts to discard the fragment's bytes so that the
    stream stays positioned on the next marker.

    If discarding failed then ``drain_error`` holds the exception that
    interrupted it and the stream position should be considered unknown.
    """

    def __init__(
        self,
        length: int,
        max_record_size: int,
        discarded: int = 0,
        drain_error: Optional[BaseException] = None,
    ):
        msg = (
            f"fragment exceeds maximum size: length={length}, "
            f"max_record_size={max_record_size}"
        )
        if drain_error is not None:
            msg = (
                f"{msg}; discarded {discarded} of {length} bytes "
                f"before failing: {drain_error}"
            )
        super().__init__(msg)
        self.length = length
        self.max_record_size = max_record_size
        self.discarded = discarded
        self.drain_error = drain_error

    @property
    def stream_state_unknown(self) -> bool:
        """ Return True if the oversized fragment could not be fully discarded """
        return self.drain_error is not None


class ShortReadError(OSError):
    """ The stream ended before the requested number of bytes arrived. """

    def __init__(self, got: int, expected: int):
        super().__init__(f"short read: got {got}, expected {expected}")
        self.got = got
        self.expected = expected


class ShortWriteError(OSError):
    """ The stream accepted fewer bytes than it was given. """

    def __init__(self, written: int, expected: int):
        super().__init__(f"short write: wrote {written}, expected {expected}")
        self.written = written
        self.expected = expected
