"""
A blocking client that sends timestamp records to the echo server and
prints the replies.
"""
import datetime
import logging
import socket
import time

from rpcrm import read_record, write_record


if __name__ == "__main__":

    import argparse

    parser = argparse.ArgumentParser(description="Record Marking Client Example")
    parser.add_argument(
        "--host",
        metavar="<host>",
        type=str,
        default="localhost",
        help="The host the server will run on",
    )
    parser.add_argument(
        "--port",
        metavar="<port>",
        type=int,
        default=53123,
        help="The port that the server will listen on",
    )
    parser.add_argument(
        "--fragment-size",
        metavar="<bytes>",
        type=int,
        default=8,
        help="The largest fragment the client sends. Default is 8.",
    )
    parser.add_argument(
        "--count", type=int, default=3, help="The number of records to send."
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

    with socket.create_connection((args.host, args.port)) as sock:
        print("Client connected")
        with sock.makefile("rb") as rfile, sock.makefile("wb") as wfile:
            for _ in range(args.count):
                now = datetime.datetime.now(tz=datetime.timezone.utc)
                write_record(wfile, now.isoformat().encode(), args.fragment_size)
                wfile.flush()
                reply = read_record(rfile)
                print(f"Client received reply: {reply.decode()}")
                time.sleep(1)
    print("Client disconnected")
