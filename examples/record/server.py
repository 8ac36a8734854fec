"""
A blocking echo server. Each record received from a client is sent back
to it as a reply.
"""
import logging
import socketserver

from rpcrm import ProtocolError, RecordReader, write_reply


class RecordEchoHandler(socketserver.StreamRequestHandler):

    reader = RecordReader()

    def handle(self):
        print(f"Client {self.client_address} connected")
        try:
            for record in self.reader.records(self.rfile):
                print(f"Server received record from {self.client_address}: {record}")
                write_reply(self.wfile, record)
        except (ProtocolError, OSError) as exc:
            # The stream position is no longer trustworthy, drop the client.
            print(f"Disconnecting {self.client_address}: {exc}")
        print(f"Client {self.client_address} disconnected")


if __name__ == "__main__":

    import argparse

    parser = argparse.ArgumentParser(description="Record Marking Echo Server Example")
    parser.add_argument(
        "--host",
        metavar="<host>",
        type=str,
        default="localhost",
        help="The host the server will running on",
    )
    parser.add_argument(
        "--port",
        metavar="<port>",
        type=int,
        default=53123,
        help="The port that the server will listen on",
    )
    parser.add_argument(
        "--max-record-size",
        metavar="<bytes>",
        type=int,
        default=32 * 1024,
        help="The largest fragment the server accepts. Default is 32768.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "error"],
        default="error",
        help="Logging level. Default is 'error'.",
    )

    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s.%(msecs)03.0f [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        level=getattr(logging, args.log_level.upper()),
    )

    RecordEchoHandler.reader = RecordReader(max_record_size=args.max_record_size)

    with socketserver.ThreadingTCPServer((args.host, args.port), RecordEchoHandler) as svr:
        print("Server has started")
        try:
            svr.serve_forever()
        except KeyboardInterrupt:
            pass
    print("Server has stopped")
