"""
One-shot request/response channel between the foreground and background contexts.

A request returns a Reply value instead of invoking success/failure callbacks.
Every request is bounded by a timeout (10 seconds by default) and can be
abandoned early through a CancellationToken.
"""
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

DEFAULT_TIMEOUT_SECONDS = 10.0
_POLL_SECONDS = 0.05

Handler = Callable[[Dict[str, Any]], Any]


@dataclass(frozen=True)
class Reply:
    ok: bool
    value: Any = None
    error: Optional[str] = None


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class MessageChannel:
    def __init__(self, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS, max_workers: int = 4):
        self.timeout_seconds = timeout_seconds
        self.logger = logging.getLogger(self.__class__.__name__)
        self._handlers: Dict[str, Handler] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="message")

    def register(self, message_type: str, handler: Handler) -> None:
        with self._lock:
            if message_type in self._handlers:
                self.logger.debug(f"Replacing handler for {message_type}")
            self._handlers[message_type] = handler

    def unregister(self, message_type: str, handler: Optional[Handler] = None) -> None:
        """Remove the handler; with handler given, only if it is still the registered one."""
        with self._lock:
            current = self._handlers.get(message_type)
            if current is not None and (handler is None or current == handler):
                del self._handlers[message_type]

    def has_receiver(self, message_type: str) -> bool:
        with self._lock:
            return message_type in self._handlers

    def request(
        self,
        message_type: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        token: Optional[CancellationToken] = None,
    ) -> Reply:
        """Send one message and wait for its reply. Never raises."""
        with self._lock:
            handler = self._handlers.get(message_type)
        if handler is None:
            return Reply(ok=False, error=f"Unknown message type: {message_type}")
        if token is not None and token.cancelled:
            return Reply(ok=False, error="cancelled")

        timeout = self.timeout_seconds if timeout is None else timeout
        try:
            future = self._executor.submit(handler, dict(payload or {}))
        except RuntimeError as e:
            return Reply(ok=False, error=str(e))

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                self.logger.warning(f"Request {message_type} timed out after {timeout}s")
                return Reply(ok=False, error="timeout")
            done, _ = wait([future], timeout=min(remaining, _POLL_SECONDS), return_when=FIRST_COMPLETED)
            if done:
                break
            if token is not None and token.cancelled:
                future.cancel()
                return Reply(ok=False, error="cancelled")

        try:
            return Reply(ok=True, value=future.result())
        except Exception as e:
            self.logger.error(f"Handler for {message_type} failed: {e}", exc_info=True)
            return Reply(ok=False, error=str(e))

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
