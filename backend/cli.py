"""lannet command line: start/stop the daemon and talk to its control surface."""

import argparse
import os
import signal
import subprocess
import sys
import time
import webbrowser
from pathlib import Path

import httpx

from config import API_PREFIX, APP_NAME, VERSION
from daemon import cleanup, is_running, read_pid, read_port

DESCRIPTION = "lannet - a little web on the LAN"

NOT_RUNNING = "daemon not running, run 'lannet' to start it"


def api_url(port: int, endpoint: str) -> str:
    return f"http://localhost:{port}{API_PREFIX}/{endpoint}"


def require_port() -> int:
    port = read_port()
    if port is None:
        print(NOT_RUNNING)
        sys.exit(1)
    return port


def check_response(resp: httpx.Response) -> None:
    """Any non-200 answer is fatal: print what the daemon said and exit."""
    if resp.status_code != httpx.codes.OK:
        print("API request failed!\n")
        sys.stdout.write(resp.text)
        sys.exit(1)


def call_api(method: str, port: int, endpoint: str, content: bytes | None = None) -> httpx.Response:
    try:
        resp = httpx.request(method, api_url(port, endpoint), content=content, timeout=5.0)
    except httpx.HTTPError as e:
        print(f"API request failed: {e}")
        sys.exit(1)
    check_response(resp)
    return resp


def open_homepage() -> bool:
    """Open the homepage in a browser. False if no daemon port is known."""
    port = read_port()
    if port is None:
        return False
    url = f"http://localhost:{port}/.homepage"
    if not webbrowser.open(url):
        print("Error opening webbrowser")
    print(url)
    return True


# --- Commands ---

def cmd_start(args: argparse.Namespace) -> None:
    if is_running():
        open_homepage()
        return

    # Start the daemon separately, this process isn't it
    try:
        subprocess.Popen(
            [sys.executable, "-m", "cli", "daemon"],
            cwd=Path(__file__).parent,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        print(f"Failed to start daemon: {e}")
        sys.exit(1)

    # Give the daemon some time to start up
    for _ in range(20):
        time.sleep(0.1)
        if read_port() is not None:
            break

    if not open_homepage():
        print("daemon failed to start up properly")


def cmd_daemon(args: argparse.Namespace) -> None:
    from main import serve

    serve()


def cmd_stop(args: argparse.Namespace) -> None:
    pid = read_pid()
    if pid is None:
        print("daemon not running")
        return
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        print("daemon not running")
    except OSError as e:
        print(f"error killing daemon: {e}")
        sys.exit(1)
    cleanup()


def cmd_version(args: argparse.Namespace) -> None:
    print(APP_NAME, VERSION)


def cmd_root(args: argparse.Namespace) -> None:
    port = require_port()
    path = Path(args.path)
    try:
        path.stat()
    except OSError as e:
        print(f"error using that path: {e}")
        sys.exit(1)
    if not path.is_dir():
        print("not a directory")
        sys.exit(1)

    new_root = str(path.resolve())
    call_api("POST", port, "setRoot", new_root.encode("utf-8"))


def cmd_name(args: argparse.Namespace) -> None:
    port = require_port()
    if args.name is None:
        resp = call_api("GET", port, "getName")
        print(resp.text)
    else:
        call_api("POST", port, "setName", args.name.encode("utf-8"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME, description=DESCRIPTION)
    parser.set_defaults(func=cmd_start)
    sub = parser.add_subparsers(title="commands")

    sub.add_parser("daemon", help="run the daemon in this process").set_defaults(func=cmd_daemon)
    sub.add_parser("stop", help="stop the daemon if running").set_defaults(func=cmd_stop)
    sub.add_parser("version", help="show version information").set_defaults(func=cmd_version)

    root = sub.add_parser("root", help="change the webserver root")
    root.add_argument("path")
    root.set_defaults(func=cmd_root)

    name = sub.add_parser("name", help="view the current name, or set a new one")
    name.add_argument("name", nargs="?", help="quote your name if it has spaces")
    name.set_defaults(func=cmd_name)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
