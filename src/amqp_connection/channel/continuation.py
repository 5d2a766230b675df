"""Single-slot cells pairing a synchronous request with its reply."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Tuple, Type

from amqp_connection.exceptions import RpcTimeoutError


class RpcContinuation:
    """Holds the caller of one synchronous method until the read path resolves it.

    Once the caller gives up waiting the cell is marked invalid; the reply
    that eventually arrives for it is matched and thrown away instead of
    being handed to the next caller.
    """

    def __init__(
        self,
        replies: Tuple[Type[Any], ...],
        on_reply: Optional[Callable[[Any], None]] = None,
    ) -> None:
        self.replies = replies
        self.valid = True
        self._on_reply = on_reply
        self._done = threading.Event()
        self._result: Any = None
        self._error: Optional[BaseException] = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def accepts(self, method: Any) -> bool:
        return isinstance(method, self.replies)

    def resolve(self, method: Any) -> None:
        """Complete with ``method``; ``on_reply`` runs first, on the resolving thread."""
        if self._on_reply is not None:
            self._on_reply(method)
        self._result = method
        self._done.set()

    def fail(self, error: BaseException) -> None:
        self._error = error
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> Any:
        if not self._done.wait(timeout):
            self.valid = False
            names = ", ".join(getattr(r, "NAME", r.__name__) for r in self.replies)
            raise RpcTimeoutError(f"Timed out after {timeout}s waiting for {names}")
        if self._error is not None:
            raise self._error
        return self._result
