"""
Command line entry point: ``wifi-transfer send`` and ``wifi-transfer accept``.

The sender prints a short id to read out to the receiver; the receiver
types it back in and the file moves across the local network.
"""

import argparse
from collections.abc import (
    Callable,
)
import functools
import logging
from pathlib import (
    Path,
)
import sys
from typing import (
    NoReturn,
    TextIO,
)

from multiaddr import (
    Multiaddr,
)
import trio

from wifi_transfer import (
    __version__,
)
from wifi_transfer.exceptions import (
    BaseTransferError,
    InterruptedTransferError,
)
from wifi_transfer.session.accept import (
    accept_file,
)
from wifi_transfer.session.send import (
    SendInfo,
    send_file,
)
from wifi_transfer.transfer.progress import (
    ProgressState,
)
from wifi_transfer.utils.address import (
    get_primary_address,
    random_port,
)
from wifi_transfer.utils.logging import (
    enable_console_debug,
)

logger = logging.getLogger("wifi_transfer.cli")

PROG = "wifi-transfer"
BAR_WIDTH = 30


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port {value!r}") from None
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port {port} is outside 1-65535")
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog=PROG,
        description="Send a file to another machine on the same local network.",
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    commands = parser.add_subparsers(dest="command", metavar="<command>")
    commands.required = True

    send = commands.add_parser("send", help="send a file")
    send.add_argument("-f", "--file", required=True, help="File to send")
    send.add_argument(
        "-p",
        "--port",
        type=_port,
        default=None,
        help="port to bind on. default is random between 1024 and 65534",
    )

    accept = commands.add_parser("accept", help="accept a file")
    accept.add_argument("-i", "--id", required=True, help="id from the sender")
    accept.add_argument("-o", "--out", required=True, help="out file")
    accept.add_argument(
        "-a", "--ip", default=None, help="IP or host name (if discovery fails)"
    )
    accept.add_argument(
        "-p", "--port", type=_port, default=None, help="Port (if discovery fails)"
    )
    accept.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=None,
        help="give up if the sender is not found within this many seconds",
    )
    accept.add_argument(
        "-y", "--yes", action="store_true", help="overwrite --out without asking"
    )
    return parser


def confirm_overwrite(path: Path, ask: Callable[[str], str] = input) -> bool:
    try:
        answer = ask(
            "Output file already exists. Are you sure you want to do this? y/n\n"
        )
    except EOFError:
        return False
    return answer.strip().lower() == "y"


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "unknown"
    seconds = int(round(seconds))
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes:02d}m{seconds:02d}s"
    if minutes:
        return f"{minutes}m{seconds:02d}s"
    return f"{seconds}s"


def format_progress(state: ProgressState) -> str:
    percent = state.percent
    if percent is None:
        return f"{state.bytes_transferred} bytes downloaded"
    filled = int(BAR_WIDTH * percent / 100)
    bar = "#" * filled + "-" * (BAR_WIDTH - filled)
    return (
        f"[{bar}] {percent:5.1f}% downloaded, "
        f"{format_duration(state.estimated_remaining)} left"
    )


class ProgressPrinter:
    """Redraws a single progress line on a terminal stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream if stream is not None else sys.stderr
        self.drawn = False

    def __call__(self, state: ProgressState) -> None:
        self.stream.write("\r" + format_progress(state))
        self.stream.flush()
        self.drawn = True

    def finish(self) -> None:
        if self.drawn:
            self.stream.write("\n")
            self.stream.flush()


def print_send_info(info: SendInfo) -> None:
    # Print the address that was actually advertised
    address = info.addresses[0] if info.addresses else get_primary_address()
    print("Discovery record published. Waiting for the receiver...")
    print(
        "If discovery does not work, the server is listening on "
        f"{address}:{info.port}"
    )
    print(f"ID is: {info.session_id}")
    print(
        f"Example command: {PROG} accept -i {info.session_id} --out {info.file_name}"
    )
    print(
        f"Example command without discovery: {PROG} accept -i {info.session_id} "
        f"-a {address} -p {info.port} --out {info.file_name}"
    )


def run_send(args: argparse.Namespace) -> int:
    path = Path(args.file).expanduser().resolve()
    if not path.is_file():
        print(f"{args.file} doesn't exist. Exiting.", file=sys.stderr)
        return 1
    port = args.port if args.port is not None else random_port()

    result = trio.run(
        functools.partial(send_file, path, port, on_ready=print_send_info)
    )
    print(f"File received ({result.bytes_sent} bytes). Shutting down server")
    return 0


def run_accept(args: argparse.Namespace, ask: Callable[[str], str] = input) -> int:
    if (args.ip is None) != (args.port is None):
        print("You need both --ip and --port to skip discovery", file=sys.stderr)
        return 1
    out = Path(args.out).expanduser().resolve()
    if out.exists() and not args.yes and not confirm_overwrite(out, ask):
        print("Not overwriting. Exiting.")
        return 0

    printer = ProgressPrinter()

    def on_found(endpoint: Multiaddr) -> None:
        if args.ip is None:
            print("Found the right server. Downloading file.")

    try:
        result = trio.run(
            functools.partial(
                accept_file,
                args.id,
                out,
                host=args.ip,
                port=args.port,
                timeout=args.timeout,
                on_progress=printer,
                on_found=on_found,
            )
        )
    finally:
        printer.finish()
    print(f"File received ({result.bytes_received} bytes). Exiting")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        enable_console_debug()

    handler = run_send if args.command == "send" else run_accept
    try:
        return handler(args)
    except (InterruptedTransferError, KeyboardInterrupt):
        print("\nInterrupted. Exiting.", file=sys.stderr)
        return 1
    except BaseTransferError as error:
        logger.debug("Transfer failed", exc_info=True)
        print(f"Error: {error}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
