"""
Terminal I/O Adapter

Line input and styled output for the chat session.

Architecture:
    - A daemon thread reads stdin and hands each line to the event loop,
      so a blocking read never stalls the listener or the link
    - All output goes through one queue drained by a single writer task;
      the session and the listener never write to the console directly
    - Live deliveries clear the current line and reprint the pending
      prompt, so they never splice into the prompt the user is typing at
"""

import asyncio
import logging
import sys
import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional, TextIO

from rich.console import Console

from .renderer import THEME, RenderedLine

logger = logging.getLogger(__name__)

CLEAR_LINE = "\r\x1b[K"


@dataclass
class _Output:
    text: str
    style: Optional[str] = None
    end: str = "\n"
    live: bool = False
    prompt_seq: Optional[int] = None


class Terminal:
    """
    Interactive terminal shared by the session and its listener.

    Attributes:
        console: Rich console all output is written to
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        lines: Optional[asyncio.Queue] = None,
        stdin: Optional[TextIO] = None,
    ):
        """
        Initialize the terminal.

        Args:
            console: Console to write to (defaults to a themed stdout console)
            lines: Queue of input lines; when given, stdin is not read
                   and None on the queue means end of input
            stdin: Stream to read lines from when no queue is given
        """
        self.console = console or Console(theme=THEME, highlight=False)
        self._lines = lines
        if stdin is None and lines is None:
            stdin = sys.stdin
        self._stdin = stdin
        self._outbox: Optional[asyncio.Queue] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._reader_thread: Optional[threading.Thread] = None
        self._prompt: Optional[str] = None
        self._read_seq = 0
        self._shown_seq = 0
        self._unread: List[str] = []

    def _ensure_writer(self) -> asyncio.Queue:
        if self._outbox is None:
            self._outbox = asyncio.Queue()
            self._writer_task = asyncio.get_running_loop().create_task(
                self._drain()
            )
        return self._outbox

    def _ensure_reader(self) -> asyncio.Queue:
        if self._lines is None:
            self._lines = asyncio.Queue()
        if self._reader_thread is None and self._stdin is not None:
            loop = asyncio.get_running_loop()
            self._reader_thread = threading.Thread(
                target=self._read_stdin,
                args=(loop, self._lines),
                name="terminal-reader",
                daemon=True,
            )
            self._reader_thread.start()
        return self._lines

    def _read_stdin(
        self, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue
    ) -> None:
        """Forward stdin lines to the event loop until end of input."""
        while True:
            try:
                line = self._stdin.readline()
            except (OSError, ValueError) as e:
                logger.warning("Terminal input failed: %s", e)
                line = ""
            try:
                loop.call_soon_threadsafe(lines.put_nowait, line or None)
            except RuntimeError:
                # Event loop already closed
                return
            if not line:
                return

    async def read_line(self, prompt: str = "") -> Optional[str]:
        """
        Show a prompt and wait for one line of input.

        Cancelling the wait never loses a line; it stays queued for the
        next read.

        Returns:
            The line without surrounding whitespace, or None at end of input
        """
        if self._unread:
            return self._unread.pop(0)
        lines = self._ensure_reader()
        self._read_seq += 1
        if prompt:
            self._put(_Output(prompt, end="", prompt_seq=self._read_seq))
        self._prompt = prompt
        try:
            line = await lines.get()
        finally:
            self._prompt = None
        if line is None:
            # Keep end of input sticky for any later read
            lines.put_nowait(None)
            return None
        return line.strip()

    def unread(self, line: str) -> None:
        """Hand a line back so the next read_line returns it without prompting."""
        self._unread.append(line)

    def show(self, line: RenderedLine) -> None:
        """Queue a line produced by the session itself."""
        self._put(_Output(line.text, line.style))

    def show_all(self, lines: Iterable[RenderedLine]) -> None:
        for line in lines:
            self.show(line)

    def deliver(self, line: RenderedLine) -> None:
        """Queue a line delivered asynchronously while input may be pending."""
        self._put(_Output(line.text, line.style, live=True))

    def _put(self, item: _Output) -> None:
        self._ensure_writer().put_nowait(item)

    async def flush(self) -> None:
        """Wait until everything queued so far has been written."""
        if self._outbox is not None:
            await self._outbox.join()

    async def close(self) -> None:
        """Flush pending output and stop the writer task."""
        await self.flush()
        if self._writer_task is not None:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
            self._writer_task = None
            self._outbox = None

    async def _drain(self) -> None:
        """Writer task: the only code that writes to the console."""
        while True:
            item = await self._outbox.get()
            try:
                self._emit(item)
            except OSError as e:
                logger.error("Failed to write to terminal: %s", e)
            finally:
                self._outbox.task_done()

    def _emit(self, item: _Output) -> None:
        if item.prompt_seq is not None:
            self._shown_seq = item.prompt_seq
        prompt = None
        if item.live and self._prompt and self._shown_seq == self._read_seq:
            prompt = self._prompt
        if prompt:
            self.console.file.write(CLEAR_LINE if self.console.is_terminal else "\n")
        self.console.print(
            item.text,
            style=item.style,
            end=item.end,
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
        if prompt:
            self.console.print(prompt, end="", markup=False, highlight=False)
        self.console.file.flush()
