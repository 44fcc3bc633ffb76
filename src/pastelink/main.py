"""
pastelink - peer-to-peer chat and file transfer with copy-paste setup

Commands:
    pastelink host          Create a connection code and wait for a guest
    pastelink join [CODE]   Answer a host's connection code
    pastelink config        Show/edit configuration

Inside a session:
    <text>                  Send a chat message
    /send PATH              Send a file
    /reset                  Drop the connection and exit
    /quit                   Leave
"""
import sys
import asyncio
import logging
import argparse
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

from pastelink import config
from pastelink.common import signaling
from pastelink.common.chunked_transfer import ReceivedFile, TransferDirection, format_size
from pastelink.common.errors import (
    ErrorCode,
    PasteLinkError,
    format_error,
    get_error,
    get_error_from_exception,
    is_connection_error,
)
from pastelink.common.user_config import LinkConfig, get_config, get_config_manager, print_config
from pastelink.controller import ConnectionController, ConnectionState
from pastelink.engine import ChannelEngine, ChatEntry, Sender
from pastelink.transport import create_transport

logger = logging.getLogger(__name__)

TOKEN_RULE = "-" * 60


def setup_logging(verbose: bool = False):
    """Log everything to the log file; only warnings to the console unless verbose"""
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)

    handlers = [console]
    try:
        handlers.append(logging.FileHandler(config.LOG_FILE))
    except OSError as e:
        print(f"  Could not open log file {config.LOG_FILE}: {e}")

    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )
    # aiortc/aioice are chatty at DEBUG
    for name in ('aiortc', 'aioice'):
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)


def save_received_file(received: ReceivedFile, dest_dir: Path) -> Path:
    """Write a received file into dest_dir without overwriting anything"""
    dest_dir.mkdir(parents=True, exist_ok=True)

    # Never trust a peer-supplied path
    name = Path(received.name.replace('\\', '/')).name
    if name in ('', '.', '..'):
        name = "received.bin"
    path = dest_dir / name

    stem = path.stem
    suffix = path.suffix
    counter = 1
    while path.exists():
        path = dest_dir / f"{stem}_{counter}{suffix}"
        counter += 1

    path.write_bytes(received.data)
    return path


class ChatConsole:
    """Terminal front-end for one session"""

    def __init__(self, link_config: LinkConfig):
        self.link_config = link_config
        self.engine = ChannelEngine(
            chunk_size=link_config.chunk_size,
            on_chat=self._on_chat,
            on_progress=self._on_progress,
            on_file_received=self._on_file_received,
            on_transfer_error=self._on_transfer_error
        )
        self.controller = ConnectionController(
            lambda: create_transport(link_config.ice_servers, link_config.buffered_low_threshold),
            engine=self.engine
        )
        self._lines: Optional[asyncio.Queue] = None
        self._progress: Dict[Tuple[TransferDirection, str], int] = {}
        self._sends = set()

    # ========== Input ==========

    def _start_stdin_reader(self):
        """Feed stdin lines into a queue from a daemon thread (None on EOF)"""
        loop = asyncio.get_running_loop()
        self._lines = asyncio.Queue()

        def read_lines():
            for line in sys.stdin:
                loop.call_soon_threadsafe(self._lines.put_nowait, line.rstrip('\r\n'))
            loop.call_soon_threadsafe(self._lines.put_nowait, None)

        threading.Thread(target=read_lines, daemon=True).start()

    async def _read_line(self, prompt: str) -> Optional[str]:
        print(prompt, end='', flush=True)
        return await self._lines.get()

    async def _read_token(self, prompt: str) -> Optional[str]:
        """Prompt until the pasted code decodes (or input ends)"""
        while True:
            token = await self._read_line(prompt)
            if token is None:
                return None
            try:
                signaling.decode(token)
                return token
            except signaling.DecodeError as e:
                print(format_error(ErrorCode.MALFORMED_TOKEN, str(e)))

    @staticmethod
    def _print_token(title: str, token: str):
        print(f"\n{title}")
        print(TOKEN_RULE)
        print(token)
        print(TOKEN_RULE)

    # ========== Handshake ==========

    async def host(self) -> int:
        try:
            return await self._host()
        finally:
            await self.controller.reset()

    async def join(self, offer: Optional[str] = None) -> int:
        try:
            return await self._join(offer)
        finally:
            await self.controller.reset()

    async def _host(self) -> int:
        self._start_stdin_reader()
        print("\nCreating connection...")
        try:
            offer = await self.controller.create_offer()
            self._print_token("Send this connection code to your guest:", offer)

            answer = await self._read_token("\nPaste the guest's answer code: ")
            if answer is None:
                return 1
            await self.controller.finalize_with_answer(answer)
        except PasteLinkError as e:
            self._print_failure(e)
            return 1

        return await self._run_session()

    async def _join(self, offer: Optional[str]) -> int:
        self._start_stdin_reader()
        if offer is None:
            offer = await self._read_token("\nPaste the host's connection code: ")
            if offer is None:
                return 1

        print("\nCreating answer...")
        try:
            answer = await self.controller.accept_offer_and_respond(offer)
        except PasteLinkError as e:
            self._print_failure(e)
            return 1

        self._print_token("Send this answer code back to the host:", answer)
        return await self._run_session()

    # ========== Session ==========

    async def _run_session(self) -> int:
        print("\nWaiting for the connection to open... (Ctrl+C to cancel)")
        state = await self.controller.wait_for(
            ConnectionState.OPEN, ConnectionState.FAILED, ConnectionState.CLOSED
        )
        if state != ConnectionState.OPEN:
            self._print_failure(self.controller.last_error)
            return 1

        print("Type a message and press Enter. /send PATH sends a file, /quit leaves.\n")
        ended = asyncio.ensure_future(
            self.controller.wait_for(ConnectionState.CLOSED, ConnectionState.FAILED)
        )
        try:
            while True:
                line_task = asyncio.ensure_future(self._lines.get())
                done, _ = await asyncio.wait({line_task, ended}, return_when=asyncio.FIRST_COMPLETED)
                if ended in done:
                    line_task.cancel()
                    if self.controller.state == ConnectionState.FAILED:
                        self._print_failure(self.controller.last_error)
                    return 0 if self.controller.state == ConnectionState.CLOSED else 1

                line = line_task.result()
                if line is None or line.strip() == "/quit":
                    return 0
                if line.strip() == "/reset":
                    print("[OK] Connection reset.")
                    return 0
                self._handle_line(line)
        finally:
            ended.cancel()
            for task in list(self._sends):
                task.cancel()

    def _handle_line(self, line: str):
        if line.startswith("/send"):
            path = line[len("/send"):].strip()
            if not path:
                print("  Usage: /send PATH")
                return
            task = asyncio.ensure_future(self._send_file(Path(path).expanduser()))
            self._sends.add(task)
            task.add_done_callback(self._sends.discard)
            return

        try:
            self.engine.send_chat(line)
        except (PasteLinkError, ValueError) as e:
            print(f"  [NOT SENT] {e}")

    async def _send_file(self, path: Path):
        try:
            if not await self.engine.send_file(path):
                print(f"  [FAILED] Stopped sending {path.name}")
                print(get_error(ErrorCode.CHANNEL_CLOSED))
        except (PasteLinkError, OSError) as e:
            print(f"  [FAILED] Could not send {path.name}")
            print(get_error_from_exception(e))

    # ========== Engine callbacks ==========

    def _on_chat(self, entry: ChatEntry):
        if entry.sender == Sender.LOCAL:
            print(f"  you> {entry.text}")
        elif entry.sender == Sender.PEER:
            print(f" peer> {entry.text}")
        else:
            print(f"    * {entry.text}")

    def _on_progress(self, direction: TransferDirection, name: str, percent: int):
        key = (direction, name)
        step = self.link_config.progress_step
        bucket = percent // step
        last = self._progress.get(key, -1)
        if bucket < last:
            last = -1  # a new transfer of the same name
        if bucket > last:
            self._progress[key] = bucket
            verb = "Sent" if direction == TransferDirection.SEND else "Received"
            print(f"    * {verb} {name}: {percent}%")
        if percent >= 100:
            self._progress.pop(key, None)

    def _on_file_received(self, received: ReceivedFile):
        try:
            path = save_received_file(received, self.link_config.download_path)
        except OSError as e:
            print(f"  [FAILED] Could not save {received.name}")
            print(get_error_from_exception(e))
            return
        print(f"  [OK] Saved {received.name} ({format_size(received.size)}) to {path}")

    def _on_transfer_error(self, error: PasteLinkError):
        print("  [TRANSFER FAILED] The connection is still open.")
        print(get_error_from_exception(error))

    @staticmethod
    def _print_failure(error: Optional[BaseException]):
        if error is None:
            print("\n[DISCONNECTED]")
            print(get_error(ErrorCode.CHANNEL_CLOSED))
            return
        if is_connection_error(error):
            print("\n[FAILED] Could not establish the connection.")
        else:
            print("\n[FAILED]")
        print(get_error_from_exception(error))
        print(f"  Details: {error}")


def cmd_host(args):
    """Start a session as host (initiator)"""
    console = ChatConsole(get_config())
    try:
        return asyncio.run(console.host())
    except KeyboardInterrupt:
        print("\nCancelled.")
        return 1


def cmd_join(args):
    """Join a session as guest (responder)"""
    console = ChatConsole(get_config())
    try:
        return asyncio.run(console.join(args.code))
    except KeyboardInterrupt:
        print("\nCancelled.")
        return 1


def cmd_config(args):
    """Show or modify configuration"""
    config_mgr = get_config_manager()
    user_cfg = config_mgr.get()

    if args.reset:
        config_mgr.reset()
        print("[OK] Configuration reset to defaults.")
        print_config(config_mgr)
        return 0

    if args.set:
        key, value = args.set
        # Convert value to appropriate type
        if isinstance(getattr(user_cfg, key, None), list):
            value = [v.strip() for v in value.split(',') if v.strip()]
        elif value.lower() in ('true', 'on', 'yes'):
            value = True
        elif value.lower() in ('false', 'off', 'no'):
            value = False
        elif value.isdigit():
            value = int(value)

        if config_mgr.set(key, value):
            print(f"[OK] Set {key} = {value}")
            return 0

        if hasattr(user_cfg, key):
            print(f"[ERROR] Invalid value for {key}: {value}")
        else:
            print(f"[ERROR] Unknown config key: {key}")
            print("\nAvailable keys:")
            for k in vars(user_cfg):
                if not k.startswith('_'):
                    print(f"  - {k}")
        return 1

    print_config(config_mgr)
    return 0


def main():
    parser = argparse.ArgumentParser(
        description='pastelink - peer-to-peer chat and file transfer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  host        Create a connection code and wait for a guest
  join        Answer a host's connection code
  config      Show/edit configuration

Examples:
  pastelink host                                   Start a session
  pastelink join                                   Join (paste the host's code)
  pastelink config --set ice_servers stun:stun.l.google.com:19302
  pastelink config --set chunk_size 16000
"""
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Host command
    subparsers.add_parser('host', help='Start a session and display a connection code')

    # Join command
    join_parser = subparsers.add_parser('join', help="Join a session with the host's code")
    join_parser.add_argument('code', nargs='?', help="Host's connection code (prompted if omitted)")

    # Config command
    config_parser = subparsers.add_parser('config', help='Show/edit configuration')
    config_parser.add_argument('--show', action='store_true', help='Show current configuration')
    config_parser.add_argument('--reset', action='store_true', help='Reset to default configuration')
    config_parser.add_argument('--set', nargs=2, metavar=('KEY', 'VALUE'), help='Set a configuration value')

    args = parser.parse_args()
    setup_logging(args.verbose)

    # Route to command handler
    if args.command == 'host':
        sys.exit(cmd_host(args))
    elif args.command == 'join':
        sys.exit(cmd_join(args))
    elif args.command == 'config':
        sys.exit(cmd_config(args))
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
