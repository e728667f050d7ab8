"""
meshd.attach — raw terminal client for a node session

Usage:
    python -m meshd.attach alice --url ws://127.0.0.1:8787

Keystrokes are sent as-is (the node echoes and edits the line itself);
node output is written straight to stdout. Ctrl-] detaches.
"""

import argparse
import asyncio
import logging
import os
import sys
import termios
import tty
from urllib.parse import quote

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

logger = logging.getLogger("meshd.attach")

DETACH = "\x1d"   # Ctrl-]


def session_url(base: str, node: str) -> str:
    return f"{base.rstrip('/')}/terminal/{quote(node, safe='')}/connect"


def translate(text: str) -> str:
    """Piped input uses LF line endings; the node expects CR"""
    return text.replace("\r\n", "\r").replace("\n", "\r")


async def attach(url: str, fd: int):
    loop = asyncio.get_running_loop()
    keys: asyncio.Queue = asyncio.Queue()

    def on_input():
        keys.put_nowait(os.read(fd, 1024))

    async with websocket_connect(url) as ws:
        loop.add_reader(fd, on_input)

        async def pump_in():
            while True:
                data = await keys.get()
                if not data:
                    return
                text = data.decode("utf-8", errors="replace")
                if DETACH in text:
                    text = text.split(DETACH, 1)[0]
                    if text:
                        await ws.send(translate(text))
                    return
                await ws.send(translate(text))

        async def pump_out():
            try:
                async for message in ws:
                    if isinstance(message, bytes):
                        message = message.decode("utf-8", errors="replace")
                    sys.stdout.write(message)
                    sys.stdout.flush()
            except ConnectionClosed as e:
                logger.debug(f"Connection closed: {e}")

        tasks = {asyncio.create_task(pump_in()), asyncio.create_task(pump_out())}
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            loop.remove_reader(fd)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)


def main():
    parser = argparse.ArgumentParser(description="Attach a terminal to a mesh node")
    parser.add_argument('node', help='Node identity, e.g. alice')
    parser.add_argument(
        '--url', default=os.getenv("MESH_URL", "ws://127.0.0.1:8787"),
        help='Daemon WebSocket base URL, including any route prefix'
    )
    parser.add_argument('--debug', '-d', action='store_true', help='Enable debug logging')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    url = session_url(args.url, args.node)
    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd) if os.isatty(fd) else None

    try:
        if saved is not None:
            tty.setraw(fd)
        asyncio.run(attach(url, fd))
    except (OSError, InvalidHandshake, InvalidURI) as e:
        if saved is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            saved = None
        print(f"Error: cannot attach to {url}: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        if saved is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
    print()


if __name__ == '__main__':
    main()
