"""
ToolSession - request/response access to an interactive command-line tool.

The tool's stdout has no framing besides the prompt it prints after every
command, so responses are delimited by watching the character stream for
that prompt.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Sequence
from typing import IO

DEFAULT_PROMPT = "cleartool> "
DEFAULT_ENCODING = "utf-8"


class ToolSessionError(Exception):
    """The tool process is gone or never became available."""


class PromptStreamParser:
    """
    Turns the tool's raw output into response lines.

    Feed characters one at a time. Non-blank lines accumulate until the
    prompt is seen; ``feed`` then returns True and ``take`` hands out the
    accumulated response.

    The rolling match restarts at 1 when a mismatching character equals the
    prompt's first character. That shortcut is only exact because the
    first character occurs once in the prompt.
    """

    def __init__(self, prompt: str = DEFAULT_PROMPT):
        if not prompt:
            raise ValueError("prompt must not be empty")
        self.prompt = prompt
        self._line: list[str] = []
        self._lines: list[str] = []
        self._matched = 0

    def feed(self, char: str) -> bool:
        """Consume one character. Returns True when a full prompt was read."""
        if char in "\r\n":
            self._flush("".join(self._line))
            self._line = []
            # the prompt never spans lines
            self._matched = 0
            return False

        self._line.append(char)
        if self.prompt[self._matched] == char:
            self._matched += 1
            if self._matched == len(self.prompt):
                self._flush("".join(self._line[: -len(self.prompt)]))
                self._line = []
                self._matched = 0
                return True
        else:
            self._matched = 1 if char == self.prompt[0] else 0
        return False

    def take(self) -> list[str]:
        """Return the pending response and start a new one."""
        lines, self._lines = self._lines, []
        return lines

    def _flush(self, line: str) -> None:
        if line.strip():
            self._lines.append(line)


class ToolSession:
    """
    One long-lived interactive tool process.

    A background thread parses stdout, a second one drains stderr into the
    log. ``execute`` is strictly half-duplex: one command in flight, callers
    are serialized by an internal lock.

    Usage:
        with ToolSession(["cleartool"]) as session:
            lines = session.execute("pwd")
    """

    def __init__(
        self,
        command: Sequence[str] | str = ("cleartool",),
        prompt: str = DEFAULT_PROMPT,
        startup_timeout: float | None = None,
        encoding: str = DEFAULT_ENCODING,
        logger: logging.Logger | None = None,
    ):
        """
        Start the tool and wait for its first prompt.

        Args:
            command: Executable and arguments
            prompt: Prompt string printed by the tool after each command
            startup_timeout: Seconds to wait for the first prompt, None to wait forever
            encoding: Encoding of the tool's streams, e.g. the console code page on Windows
            logger: Logger for command tracing and the tool's stderr

        Raises:
            ToolSessionError: If the tool exits or times out before prompting
        """
        self.logger = logger or logging.getLogger(__name__)
        self._parser = PromptStreamParser(prompt)
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._response: list[str] = []
        self._eof = False

        if isinstance(command, str):
            command = [command]
        self._process = subprocess.Popen(
            list(command),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding=encoding,
            errors="replace",
        )
        self._output_thread = threading.Thread(
            target=self._read_output, name="tool-stdout", daemon=True
        )
        self._error_thread = threading.Thread(
            target=self._read_error, name="tool-stderr", daemon=True
        )
        self._output_thread.start()
        self._error_thread.start()

        if not self._ready.wait(startup_timeout):
            self._process.kill()
            self._process.wait()
            raise ToolSessionError(f"No prompt from {command[0]} after {startup_timeout}s")
        if self._eof:
            self._process.wait()
            raise ToolSessionError(f"{command[0]} exited before its first prompt")
        # Anything printed before the first prompt is a banner
        self._response = []

    def __enter__(self) -> "ToolSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def alive(self) -> bool:
        return not self._eof and self._process.poll() is None

    def execute(self, command: str) -> list[str]:
        """
        Send one command and return its response lines.

        An empty list is a normal answer (e.g. "not found").

        Raises:
            ToolSessionError: If the tool is no longer running
        """
        with self._lock:
            if not self.alive:
                raise ToolSessionError(f"Tool is not running, cannot execute: {command}")
            self.logger.debug("Start executing tool command: %s", command)
            self._ready.clear()
            stdin = self._stdin()
            try:
                stdin.write(command + "\n")
                stdin.flush()
            except (BrokenPipeError, OSError) as e:
                raise ToolSessionError(f"Could not send command {command!r}: {e}") from e
            self._ready.wait()
            if self._eof:
                raise ToolSessionError(f"Tool exited while executing: {command}")
            result, self._response = self._response, []
            self.logger.debug("Stop executing tool command: %s (%d lines)", command, len(result))
            return result

    def close(self) -> None:
        """Ask the tool to quit and wait for it and the reader threads."""
        if self._process.poll() is None:
            try:
                stdin = self._stdin()
                stdin.write("quit\n")
                stdin.flush()
                stdin.close()
            except (BrokenPipeError, OSError):
                pass
        self._output_thread.join()
        self._error_thread.join()
        self._process.wait()
        for stream in (self._process.stdout, self._process.stderr):
            if stream is not None:
                stream.close()

    def _stdin(self) -> IO[str]:
        if self._process.stdin is None:
            raise ToolSessionError("Tool stdin is not available")
        return self._process.stdin

    def _read_output(self) -> None:
        stdout = self._process.stdout
        assert stdout is not None
        while True:
            char = stdout.read(1)
            if not char:
                break
            if self._parser.feed(char):
                self._response = self._parser.take()
                self._ready.set()
        self._eof = True
        # Release a caller still waiting for a prompt that will never come
        self._ready.set()

    def _read_error(self) -> None:
        stderr = self._process.stderr
        assert stderr is not None
        for line in stderr:
            line = line.rstrip("\r\n")
            if line:
                self.logger.warning("tool stderr: %s", line)
