"""
Transport layer for MCP tool communication.

Implements:
  - the JSON-RPC 2.0 envelope (requests, notifications, responses)
  - LineBuffer: newline framing over an arbitrary byte stream
  - StdioTransport: a child process whose stdin/stdout carry the frames

The transport knows nothing about request ids. It pushes raw bytes to
``on_data`` as they arrive and reports process exit through ``on_exit``;
matching replies to callers is the correlator's job.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from devtools_mcp.errors import ChannelClosed, MalformedFrame

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

# Child pipes are read in chunks rather than lines, so framing never depends on
# how the OS happens to split the pipe.
READ_CHUNK_SIZE = 64 * 1024
MAX_STDERR_LOG_LINE = 2000

DataCallback = Callable[[bytes], None]
ExitCallback = Callable[[int | None], None]


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request."""
    method: str
    params: dict[str, Any]
    id: int

    def to_json(self) -> str:
        return json.dumps({
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        })

    def encode(self) -> bytes:
        return self.to_json().encode("utf-8")


@dataclass
class JsonRpcNotification:
    """JSON-RPC 2.0 notification (a request without an id)."""
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({
            "jsonrpc": JSONRPC_VERSION,
            "method": self.method,
            "params": self.params,
        })

    def encode(self) -> bytes:
        return self.to_json().encode("utf-8")


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: dict | None = None

    @classmethod
    def from_json(cls, data: str | bytes) -> "JsonRpcResponse":
        message = decode_frame(data)
        if not isinstance(message, cls):
            raise MalformedFrame("Frame is a notification, not a response")
        return message

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str:
        if not self.error:
            return ""
        return str(self.error.get("message") or "Unknown error")

    @property
    def error_code(self) -> int | None:
        code = (self.error or {}).get("code")
        return code if isinstance(code, int) else None


def decode_frame(data: str | bytes) -> JsonRpcResponse | JsonRpcNotification:
    """
    Parse one frame into a response or a server-initiated notification.

    Raises:
        MalformedFrame: the frame is not valid JSON or not a JSON-RPC envelope.
    """
    try:
        parsed = json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedFrame(f"Invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise MalformedFrame(f"Expected a JSON object, got {type(parsed).__name__}")

    version = parsed.get("jsonrpc", JSONRPC_VERSION)
    if version != JSONRPC_VERSION:
        raise MalformedFrame(f"Unsupported protocol version: {version!r}")

    if "method" in parsed and "id" not in parsed:
        params = parsed.get("params")
        return JsonRpcNotification(
            method=str(parsed["method"]),
            params=params if isinstance(params, dict) else {},
        )

    if "result" not in parsed and "error" not in parsed:
        raise MalformedFrame("Response carries neither 'result' nor 'error'")

    msg_id = parsed.get("id")
    if isinstance(msg_id, bool) or not isinstance(msg_id, (int, str, type(None))):
        raise MalformedFrame(f"Invalid id: {msg_id!r}")

    error = parsed.get("error")
    if error is not None and not isinstance(error, dict):
        error = {"message": str(error)}

    return JsonRpcResponse(id=msg_id, result=parsed.get("result"), error=error)


class LineBuffer:
    """
    Reassembles newline-terminated frames from arbitrary byte deliveries.

    A single feed() may complete zero, one or several frames; a trailing
    partial line is kept until the rest of it arrives.
    """

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        self._buffer.extend(data)
        if b"\n" not in data:
            return []
        *lines, rest = self._buffer.split(b"\n")
        self._buffer = bytearray(rest)
        frames = []
        for line in lines:
            line = bytes(line).rstrip(b"\r")
            if line.strip():
                frames.append(line)
        return frames

    @property
    def pending(self) -> int:
        """Bytes of an incomplete frame still waiting for its newline."""
        return len(self._buffer)

    def drain(self) -> bytes:
        """Hand back the unterminated tail and empty the buffer."""
        tail = bytes(self._buffer)
        self._buffer.clear()
        return tail

    def clear(self) -> None:
        self._buffer.clear()


class Transport(ABC):
    """Abstract byte channel to one tool server."""

    on_data: DataCallback | None = None
    on_exit: ExitCallback | None = None

    @abstractmethod
    async def start(self) -> None:
        """Start the transport (e.g., launch subprocess)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the transport (e.g., terminate subprocess)."""
        ...

    @abstractmethod
    def write(self, frame: bytes) -> None:
        """Write one frame. The newline terminator is appended here."""
        ...

    @abstractmethod
    def is_alive(self) -> bool:
        """Check if the transport is active."""
        ...


class StdioTransport(Transport):
    """
    Newline-delimited frames over the stdin/stdout pipes of a subprocess.

    The child inherits our environment (plus ``env`` overrides) and runs in
    its own working directory. stderr is drained and logged, never parsed.
    Exit or a broken pipe is reported through ``on_exit`` because it can
    happen at any moment, not only while a call is in flight.
    """

    def __init__(
        self,
        command: list[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        name: str | None = None,
    ):
        """
        Args:
            command: Command to launch the tool server process.
                     e.g., ["python", "-m", "devtools_mcp.servers.git_analytics"]
            cwd: Working directory for the child process.
            env: Extra environment variables layered over os.environ.
            name: Label used in log lines (defaults to the executable).
        """
        if not command:
            raise ValueError("Transport command must not be empty")
        self.command = command
        self.cwd = cwd
        self.env = env
        self.name = name or command[0]
        self.on_data = None
        self.on_exit = None
        self._process: asyncio.subprocess.Process | None = None
        self._readers: list[asyncio.Task] = []
        self._closing = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    async def start(self) -> None:
        """
        Launch the tool server subprocess.

        Raises:
            OSError: the executable or working directory does not exist.
        """
        if self.is_alive():
            logger.warning(f"[{self.name}] transport already running, stopping first")
            await self.stop()

        logger.info(f"[{self.name}] starting stdio transport: {' '.join(self.command)}")
        self._closing = False
        self._process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            env={**os.environ, **(self.env or {})},
        )
        self._readers = [
            asyncio.create_task(self._read_stdout(self._process)),
            asyncio.create_task(self._read_stderr(self._process)),
        ]

    async def stop(self) -> None:
        """Terminate the tool server subprocess."""
        process = self._process
        if process is None:
            return

        self._closing = True
        if process.stdin and not process.stdin.is_closing():
            process.stdin.close()
        if process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=5)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning(f"[{self.name}] did not exit after SIGTERM, killing")
                process.kill()
                await process.wait()

        for task in self._readers:
            task.cancel()
        await asyncio.gather(*self._readers, return_exceptions=True)
        self._readers = []
        self._process = None
        logger.info(f"[{self.name}] stdio transport stopped")

    def is_alive(self) -> bool:
        """Check if the subprocess is running."""
        return self._process is not None and self._process.returncode is None

    def write(self, frame: bytes) -> None:
        """Queue a frame on the child's stdin; the OS pipe buffer absorbs it."""
        process = self._process
        if not self.is_alive() or process.stdin is None or process.stdin.is_closing():
            raise ChannelClosed(f"Tool server {self.name} is not running")
        try:
            process.stdin.write(frame + b"\n")
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ChannelClosed(f"Tool server {self.name} closed its input: {e}") from e

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        while True:
            chunk = await process.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            if self.on_data is None:
                continue
            try:
                self.on_data(chunk)
            except Exception:
                logger.exception(f"[{self.name}] data handler failed")

        returncode = await process.wait()
        if self._closing:
            return
        logger.warning(f"[{self.name}] process exited with code {returncode}")
        if self.on_exit is not None:
            self.on_exit(returncode)

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        # Chunked like stdout: readline() gives up on lines over the stream limit.
        lines = LineBuffer()
        while True:
            chunk = await process.stderr.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            for line in lines.feed(chunk):
                self._log_stderr(line)
        if lines.pending:
            self._log_stderr(lines.drain())

    def _log_stderr(self, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace").rstrip()
        if len(text) > MAX_STDERR_LOG_LINE:
            text = f"{text[:MAX_STDERR_LOG_LINE]}... ({len(text)} chars)"
        if text:
            logger.info(f"[{self.name}] stderr: {text}")
