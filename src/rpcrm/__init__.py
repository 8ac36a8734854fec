__version__ = "0.1.0"

from rpcrm.errors import (
    FragmentTooLargeError,
    ProtocolError,
    RecordMarkingError,
    ShortReadError,
    ShortWriteError,
    ZeroLengthFragmentError,
)
from rpcrm.marker import decode_marker, encode_marker, read_marker, write_marker
from rpcrm.record import (
    MAX_RECORD_SIZE,
    RecordReader,
    frame_record,
    iter_records,
    read_record,
    write_record,
    write_reply,
)
