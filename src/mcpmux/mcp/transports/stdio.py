"""Process-pipe transport: newline-delimited JSON-RPC over a child's stdio.

A reader task splits stdout into lines and feeds a bounded queue; a single
dispatcher task parses each line and correlates responses with pending
requests by id. Writes to stdin are serialized by a lock so two payloads
never interleave on one line.
"""

import asyncio
import itertools
import os
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from mcpmux.errors import create_error
from mcpmux.logging.logger import MuxLogger
from mcpmux.types import LogLevel

from ..protocol import METHOD_NOT_FOUND, JSONRPCMessage
from .base import JSONRPCTransport

DEFAULT_REQUEST_TIMEOUT = 30.0
READ_CHUNK_SIZE = 64 * 1024
INBOX_SIZE = 256
NOTIFICATION_HISTORY = 100

NotificationCallback = Callable[[dict[str, Any]], None]
ExitCallback = Callable[[int | None], None]


@dataclass
class PendingRequest:
    """An outbound request waiting for the response with the same id."""

    id: int
    method: str
    future: asyncio.Future[Any]
    deadline: float  # event loop time
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def settle(self, result: Any = None, error: BaseException | None = None) -> None:
        """Resolve or reject once; later calls are ignored."""
        if self.timer:
            self.timer.cancel()
            self.timer = None
        if self.future.done():
            return
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(result)

    def discard(self) -> None:
        """Drop without settling; nobody is left to observe the outcome."""
        if self.timer:
            self.timer.cancel()
            self.timer = None
        if not self.future.done():
            self.future.cancel()


class StdioTransport(JSONRPCTransport):
    """MCP over a locally spawned process.

    The process's stderr is inherited for diagnostics and never parsed.
    """

    def __init__(
        self,
        server: str,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        logger: MuxLogger | None = None,
    ):
        """Initialize stdio transport.

        Args:
            server: Server name (for errors and logs)
            command: Executable to launch
            args: Command arguments
            env: Extra environment variables merged over the current environment
            cwd: Optional working directory
            request_timeout: Seconds before an unanswered request is rejected
            logger: Optional logger
        """
        super().__init__(server, logger)
        self.command = command
        self.args = list(args or [])
        self.env = dict(env or {})
        self.cwd = cwd
        self.request_timeout = request_timeout

        self.notifications: deque[dict[str, Any]] = deque(maxlen=NOTIFICATION_HISTORY)
        self.returncode: int | None = None

        self._process: asyncio.subprocess.Process | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, PendingRequest] = {}
        self._write_lock = asyncio.Lock()
        self._inbox: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=INBOX_SIZE)
        self._reader_task: asyncio.Task[None] | None = None
        self._dispatch_task: asyncio.Task[None] | None = None
        self._open = False
        self._notification_callbacks: list[NotificationCallback] = []
        self._exit_callbacks: list[ExitCallback] = []

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def on_notification(self, callback: NotificationCallback) -> None:
        """Register an observer for server-initiated notifications."""
        self._notification_callbacks.append(callback)

    def on_exit(self, callback: ExitCallback) -> None:
        """Register an observer for process exit (receives the return code)."""
        self._exit_callbacks.append(callback)

    async def start(self) -> None:
        """Launch the server process and the reader/dispatcher tasks.

        Raises:
            MuxError(TRANSPORT_CLOSED): If the process cannot be spawned
        """
        if self._process is not None:
            return

        self._log(LogLevel.INFO, f"Starting process: {self.command} {' '.join(self.args)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,
                env={**os.environ, **self.env} if self.env else None,
                cwd=self.cwd,
            )
        except OSError as e:
            raise create_error(
                "TRANSPORT_CLOSED",
                server=self.server,
                detail=f"Failed to start STDIO process: {e}",
                cause=e,
            ) from e

        self._open = True
        self._reader_task = asyncio.create_task(self._read_stdout())
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())

    async def initialize(self) -> dict[str, Any]:
        await self.start()
        return await super().initialize()

    async def _request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        if not self._open or self._process is None:
            raise create_error("TRANSPORT_CLOSED", server=self.server)

        loop = asyncio.get_running_loop()
        request_id = next(self._ids)
        pending = PendingRequest(
            id=request_id,
            method=method,
            future=loop.create_future(),
            deadline=loop.time() + self.request_timeout,
        )
        pending.timer = loop.call_later(self.request_timeout, self._expire, request_id)
        self._pending[request_id] = pending

        try:
            await self._write(JSONRPCMessage.request(method, params, request_id))
            return await pending.future
        finally:
            # Covers write failure and caller cancellation; a no-op once settled
            if self._pending.get(request_id) is pending:
                del self._pending[request_id]
            pending.discard()

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        if not self._open:
            raise create_error("TRANSPORT_CLOSED", server=self.server)
        await self._write(JSONRPCMessage.notification(method, params))

    async def _write(self, message: dict[str, Any]) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise create_error("TRANSPORT_CLOSED", server=self.server)
        data = JSONRPCMessage.encode_line(message)
        async with self._write_lock:
            try:
                process.stdin.write(data)
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise create_error(
                    "TRANSPORT_CLOSED",
                    server=self.server,
                    detail=f"Failed to send request: {e}",
                    cause=e,
                ) from e

    def _expire(self, request_id: int) -> None:
        """Deadline callback: reject and forget the request."""
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        pending.timer = None
        self._log(LogLevel.WARN, f"Request {request_id} ({pending.method}) timed out")
        pending.settle(
            error=create_error(
                "REQUEST_TIMEOUT",
                server=self.server,
                method=pending.method,
                timeout_seconds=self.request_timeout,
            )
        )

    async def _read_stdout(self) -> None:
        """Read stdout incrementally and queue complete lines."""
        if self._process is None or self._process.stdout is None:
            await self._inbox.put(None)
            return
        stdout = self._process.stdout
        buffer = b""

        while True:
            try:
                chunk = await stdout.read(READ_CHUNK_SIZE)
            except (ConnectionResetError, BrokenPipeError):
                chunk = b""
            if not chunk:
                break
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                if line.strip():
                    await self._inbox.put(line)

        # Final line without a trailing newline
        if buffer.strip():
            await self._inbox.put(buffer)
        await self._inbox.put(None)

    async def _dispatch_loop(self) -> None:
        """Single consumer of the inbox; handles exit once stdout closes."""
        while True:
            line = await self._inbox.get()
            if line is None:
                break
            try:
                self._dispatch_line(line)
            except Exception as e:
                self._log(LogLevel.WARN, f"Dropping message that failed to dispatch: {e!r}")

        self._close_channel("process output closed")

        if self._process is None:
            return
        self.returncode = await self._process.wait()
        self._log(LogLevel.INFO, f"Process exited (code={self.returncode})")
        for callback in self._exit_callbacks:
            try:
                callback(self.returncode)
            except Exception as e:
                self._log(LogLevel.WARN, f"Error in exit callback: {e}")

    def _dispatch_line(self, line: bytes) -> None:
        try:
            message = JSONRPCMessage.parse(line)
        except ValueError as e:
            self._log(LogLevel.WARN, f"Failed to parse message: {e}", line=line[:200])
            return

        if JSONRPCMessage.is_response(message):
            self._resolve(message)
        elif JSONRPCMessage.is_notification(message):
            self._deliver_notification(message)
        elif "method" in message:
            self._answer_server_request(message)
        else:
            self._log(LogLevel.DEBUG, "Ignoring message without id or method")

    def _resolve(self, message: dict[str, Any]) -> None:
        if not isinstance(message["id"], (int, str)):
            self._log(LogLevel.WARN, f"Dropping response with invalid id {message['id']!r}")
            return
        if not JSONRPCMessage.is_error(message) and "result" not in message:
            # e.g. {"id": 1, "error": null}; the request stays pending
            self._log(
                LogLevel.WARN,
                f"Dropping response without result or error for id {message['id']!r}",
            )
            return
        pending = self._pending.pop(message["id"], None)
        if pending is None:
            self._log(LogLevel.DEBUG, f"Dropping response for unknown id {message['id']!r}")
            return

        if JSONRPCMessage.is_error(message):
            error = JSONRPCMessage.get_error(message)
            pending.settle(
                error=create_error(
                    "PROTOCOL_ERROR",
                    server=self.server,
                    message=error.get("message") or "Unknown error",
                    status_code=error.get("code"),
                )
            )
        else:
            pending.settle(result=JSONRPCMessage.get_result(message))

    def _deliver_notification(self, message: dict[str, Any]) -> None:
        self.notifications.append(message)
        for callback in self._notification_callbacks:
            try:
                callback(message)
            except Exception as e:
                self._log(LogLevel.WARN, f"Error in notification callback: {e}")

    def _answer_server_request(self, message: dict[str, Any]) -> None:
        """Reply to server-initiated requests; only ``ping`` is supported."""
        if message["method"] == "ping":
            reply = JSONRPCMessage.success_response(message["id"], {})
        else:
            reply = JSONRPCMessage.error_response(
                message["id"], METHOD_NOT_FOUND, f"Method not supported: {message['method']}"
            )
        task = asyncio.get_running_loop().create_task(self._write(reply))
        task.add_done_callback(self._log_reply_failure)

    def _log_reply_failure(self, task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            self._log(LogLevel.DEBUG, f"Failed to answer server request: {task.exception()}")

    def _close_channel(self, reason: str) -> None:
        """Mark unusable and reject every outstanding request."""
        self._open = False
        pending = list(self._pending.values())
        self._pending.clear()
        for request in pending:
            request.settle(
                error=create_error(
                    "TRANSPORT_CLOSED",
                    server=self.server,
                    detail=f"{reason} before a response to {request.method}",
                )
            )
        if pending:
            self._log(LogLevel.WARN, f"Rejected {len(pending)} pending requests: {reason}")

    async def disconnect(self, grace_period: float = 2.0) -> None:
        """Close stdin, wait for exit, then terminate/kill. Idempotent."""
        process = self._process
        if process is None:
            return

        self._close_channel("transport disconnected")

        if process.returncode is None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()
            try:
                await asyncio.wait_for(process.wait(), timeout=grace_period)
            except TimeoutError:
                self._log(LogLevel.WARN, "Process did not exit, terminating")
                try:
                    process.terminate()
                    await asyncio.wait_for(process.wait(), timeout=grace_period)
                except ProcessLookupError:
                    pass
                except TimeoutError:
                    process.kill()
                    await process.wait()

        tasks = [t for t in (self._reader_task, self._dispatch_task) if t is not None]
        if tasks:
            _, still_running = await asyncio.wait(tasks, timeout=1.0)
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)

        self.returncode = process.returncode
        self._reader_task = None
        self._dispatch_task = None
        self._log(LogLevel.INFO, "Disconnected")


