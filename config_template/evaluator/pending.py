"""
Placeholders for asynchronous expression results and their aggregation.

An expression may return an awaitable. The walker and the variable builder
keep producing their output eagerly and leave a Pending in the slot the value
belongs to; once the awaitable settles the Pending writes the value back
through its done-callbacks. A PendingSet tracks every Pending of one pass so
callers can wait for the whole pass at once.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional

from config_template.system.errors import PendingNotSettledError

logger = logging.getLogger(__name__)


class Pending:
    """
    A not-yet-settled result.

    The wrapped awaitable is awaited exactly once, however many times the
    Pending itself is awaited. Inside a running event loop it is scheduled as
    soon as the Pending is created, so placeholders fill in without a waiter.
    A failure is logged and settles to the sentinel, so awaiting a Pending
    never raises because of the expression.
    """

    def __init__(self, awaitable: Optional[Awaitable[Any]], sentinel: Any = None, label: str = ""):
        """
        Args:
            awaitable: The coroutine, future or task producing the value.
            sentinel: Value to settle to when the awaitable raises.
            label: Short description used in log messages (usually the expression).
        """
        self._awaitable = awaitable
        self._sentinel = sentinel
        self.label = label
        self._done = False
        self._failed = False
        self._value: Any = None
        self._task: Optional[asyncio.Future] = None
        self._callbacks: List[Callable[[Any], None]] = []
        if awaitable is not None:
            self._start_if_running()

    def _start_if_running(self) -> None:
        # Outside an event loop the awaitable starts on the first wait()
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = asyncio.ensure_future(self._run())

    def done(self) -> bool:
        """Whether the value is available."""
        return self._done

    def failed(self) -> bool:
        """Whether the awaitable raised and the sentinel was substituted."""
        return self._failed

    def result(self) -> Any:
        """
        Returns the settled value.

        Raises:
            PendingNotSettledError: If the value is not available yet.
        """
        if not self._done:
            raise PendingNotSettledError(f"Pending result '{self.label}' has not settled yet")
        return self._value

    def add_done_callback(self, callback: Callable[[Any], None]) -> None:
        """
        Registers callback(value) to run when the value settles.
        Runs immediately if it already has.
        """
        if self._done:
            callback(self._value)
        else:
            self._callbacks.append(callback)

    async def wait(self) -> Any:
        """Awaits settlement and returns the value (or the sentinel on failure)."""
        if self._done:
            return self._value
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        await asyncio.shield(self._task)
        return self._value

    def __await__(self):
        return self.wait().__await__()

    def cancel(self) -> None:
        """Drops an unsettled result. Its done-callbacks never run."""
        if self._done:
            return
        if self._task is not None:
            self._task.cancel()
        awaitable = self._awaitable
        if inspect.iscoroutine(awaitable) and inspect.getcoroutinestate(awaitable) == inspect.CORO_CREATED:
            awaitable.close()
        self._callbacks = []

    def __deepcopy__(self, memo):
        # Copies of a tree share its placeholders
        return self

    async def _resolve(self) -> Any:
        return await self._awaitable

    async def _run(self) -> None:
        try:
            value = await self._resolve()
        except Exception as e:
            logger.error(f"Template error in pending result '{self.label}': {e}")
            value = self._sentinel
            self._failed = True
        self._settle(value)

    def _settle(self, value: Any) -> None:
        self._value = value
        self._done = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(value)

    def __repr__(self) -> str:
        state = f"value={self._value!r}" if self._done else "pending"
        return f"<Pending '{self.label}' {state}>"


class PendingSet:
    """
    All Pending results produced while building one environment or walking one tree.

    settle() waits for every member; a failing member settles to its sentinel
    and never stops the others.
    """

    def __init__(self):
        self._members: List[Pending] = []

    def track(self, pending: Pending) -> Pending:
        """Adds a Pending to the set and returns it."""
        self._members.append(pending)
        return pending

    def extend(self, other: "PendingSet") -> None:
        """Tracks every member of another set as well."""
        for pending in other:
            self.track(pending)

    def __iter__(self):
        return iter(list(self._members))

    def __len__(self) -> int:
        return len(self._members)

    @property
    def outstanding(self) -> int:
        """Number of members that have not settled."""
        return sum(1 for pending in self._members if not pending.done())

    def settled(self) -> bool:
        return self.outstanding == 0

    async def settle(self) -> None:
        """Waits until every tracked Pending has settled."""
        # Members may be added while earlier ones settle (nested joins), so loop.
        while not self.settled():
            waiting = [pending.wait() for pending in self._members if not pending.done()]
            logger.debug(f"PendingSet: waiting for {len(waiting)} pending result(s)")
            await asyncio.gather(*waiting)


class PendingStructure(Pending):
    """
    Pending result of a whole structure walk.

    `partial` exposes the eagerly built tree, with Pending placeholders in the
    slots that have not settled yet.
    """

    def __init__(self, walk: Any, label: str = "structure"):
        self._walk = walk
        super().__init__(None, label=label)

    async def _resolve(self) -> Any:
        return await self._walk.settle()

    @property
    def partial(self) -> Any:
        return self._walk.value


class PendingEnvironment(Pending):
    """Pending result of a variable environment build; `partial` is the eager environment."""

    def __init__(self, environment: Any, pending_set: PendingSet, label: str = "environment"):
        self._environment = environment
        self._pending_set = pending_set
        super().__init__(None, label=label)

    async def _resolve(self) -> Any:
        await self._pending_set.settle()
        return self._environment

    @property
    def partial(self) -> Any:
        return self._environment
