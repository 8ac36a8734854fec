import logging
import struct
import unittest
import unittest.mock

from rpcrm.marker import RECORD_MARKER_FORMAT, encode_marker
from rpcrm.record import frame_record
from rpcrm.stream.protocols.record import RecordMarkingStreamProtocol


def create_fragment(data: bytes, last: bool = True, length: int = None) -> bytes:
    length = len(data) if length is None else length
    return struct.pack(RECORD_MARKER_FORMAT, encode_marker(length, last)) + data


class RecordMarkingStreamProtocolTestCase(unittest.TestCase):
    def test_error_raised_when_sending_invalid_data_type(self):
        p = RecordMarkingStreamProtocol()
        with self.assertLogs(
            "rpcrm.stream.protocols.record", level=logging.ERROR
        ) as log:
            p.send("Hello World")
        self.assertIn("data must be bytes", log.output[0])

    def test_error_raised_when_sending_empty_record(self):
        p = RecordMarkingStreamProtocol()
        transport_mock = unittest.mock.Mock()
        p.transport = transport_mock

        with self.assertLogs(
            "rpcrm.stream.protocols.record", level=logging.ERROR
        ) as log:
            p.send(b"")
        self.assertIn("data must contain at least 1 byte", log.output[0])

        self.assertFalse(transport_mock.write.called)

    def test_send_frames_record(self):
        p = RecordMarkingStreamProtocol()
        transport_mock = unittest.mock.Mock()
        p.transport = transport_mock

        p.send(b"Hello World")

        transport_mock.write.assert_called_once_with(
            create_fragment(b"Hello World")
        )

    def test_send_splits_large_record(self):
        p = RecordMarkingStreamProtocol(max_record_size=4)
        transport_mock = unittest.mock.Mock()
        p.transport = transport_mock

        p.send(b"abcdefg")

        transport_mock.write.assert_called_once_with(
            create_fragment(b"abc", False)
            + create_fragment(b"def", False)
            + create_fragment(b"g", True)
        )

    def test_invalid_maximum_record_size(self):
        with self.assertRaises(ValueError):
            RecordMarkingStreamProtocol(max_record_size=0)

    def test_record_received_in_worst_case_delivery_scenario(self):
        on_record_mock = unittest.mock.Mock()

        p = RecordMarkingStreamProtocol(on_record=on_record_mock)

        msg = frame_record(b"Hello World", max_fragment_size=4)

        # Send the test record 1 byte at a time
        for b in msg:
            p.data_received([b])

        self.assertEqual(on_record_mock.call_count, 1)
        (args, kwargs) = on_record_mock.call_args
        self.assertIs(args[0], p)
        self.assertEqual(args[2], b"Hello World")

    def test_multiple_records_received_at_once(self):
        on_record_mock = unittest.mock.Mock()

        p = RecordMarkingStreamProtocol(on_record=on_record_mock)

        p.data_received(
            create_fragment(b"abc", False)
            + create_fragment(b"de", True)
            + create_fragment(b"fgh", True)
            + create_fragment(b"partial", False)
        )

        self.assertEqual(on_record_mock.call_count, 2)
        records = [c[0][2] for c in on_record_mock.call_args_list]
        self.assertEqual(records, [b"abcde", b"fgh"])

        p.data_received(create_fragment(b" record", True))
        self.assertEqual(on_record_mock.call_count, 3)
        self.assertEqual(on_record_mock.call_args[0][2], b"partial record")

    def test_error_raised_when_received_a_zero_length_fragment(self):
        on_record_mock = unittest.mock.Mock()
        close_mock = unittest.mock.Mock()

        p = RecordMarkingStreamProtocol(on_record=on_record_mock)
        p.close = close_mock

        with self.assertLogs(
            "rpcrm.stream.protocols.record", level=logging.ERROR
        ) as log:
            p.data_received(create_fragment(b""))
        self.assertIn("is zero", log.output[0])

        self.assertFalse(on_record_mock.called)

        # Error scenario should trigger the protocol to close the connection
        self.assertTrue(close_mock.called)

    def test_error_raised_when_received_an_oversized_fragment(self):
        on_record_mock = unittest.mock.Mock()
        close_mock = unittest.mock.Mock()

        p = RecordMarkingStreamProtocol(on_record=on_record_mock, max_record_size=16)
        p.close = close_mock

        with self.assertLogs(
            "rpcrm.stream.protocols.record", level=logging.ERROR
        ) as log:
            p.data_received(create_fragment(b"x" * 16) + create_fragment(b"ok"))
        self.assertIn("exceeds maximum record size", log.output[0])

        self.assertFalse(on_record_mock.called)
        self.assertTrue(close_mock.called)

    def test_callback_errors_do_not_break_the_protocol(self):
        on_record_mock = unittest.mock.Mock(side_effect=Exception("boom"))

        p = RecordMarkingStreamProtocol(on_record=on_record_mock)

        with self.assertLogs(
            "rpcrm.stream.protocols.base", level=logging.ERROR
        ) as log:
            p.data_received(create_fragment(b"one") + create_fragment(b"two"))
        self.assertIn("Error in on_record callback method", log.output[0])
        self.assertEqual(on_record_mock.call_count, 2)

    def test_connection_callbacks(self):
        on_peer_available_mock = unittest.mock.Mock()
        on_peer_unavailable_mock = unittest.mock.Mock()
        transport_mock = unittest.mock.Mock()
        transport_mock.get_extra_info.side_effect = lambda name: {
            "peername": ("::1", 5000, 0, 0),
            "sockname": ("127.0.0.1", 6000),
        }.get(name)

        p = RecordMarkingStreamProtocol(
            on_peer_available=on_peer_available_mock,
            on_peer_unavailable=on_peer_unavailable_mock,
        )

        p.connection_made(transport_mock)
        self.assertEqual(p.raddr, ("::1", 5000))
        self.assertEqual(p.laddr, ("127.0.0.1", 6000))
        peer_id = p.identity
        self.assertIsInstance(peer_id, bytes)
        on_peer_available_mock.assert_called_once_with(p, peer_id)

        p.connection_lost(None)
        on_peer_unavailable_mock.assert_called_once_with(p, peer_id)
        self.assertTrue(transport_mock.close.called)
        self.assertIsNone(p.transport)
        self.assertIsNone(p.raddr)


if __name__ == "__main__":
    unittest.main()
