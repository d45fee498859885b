"""
Execution context shared by every node under one subject-type boundary.

The context holds:
- the subject (one mutable cell, replaced through change_subject)
- global options (read-only, same mapping for the whole root execution)
- state (open key/value store, missing keys read as None)
- a cancellation token (shared across transition boundaries)
- the result of the node currently executing (per asyncio task)
"""

import asyncio
from collections.abc import Iterator, Mapping, MutableMapping
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from nodeflow.errors import ExecutionCancelledError
from nodeflow.graph.result import NodeResult

T = TypeVar("T")
D = TypeVar("D")

GlobalOptions = Mapping[str, Any]

# Each Group child runs in its own task with a copied context, so concurrent
# siblings never see each other's result here.
_current_result: ContextVar[NodeResult | None] = ContextVar("current_result", default=None)

_MISSING = object()


class ExecutionState(MutableMapping[str, Any]):
    """
    Key/value store visible to every node sharing a context.

    Reads of a missing key return None (or the given default) rather than
    raising, so nodes can signal each other without a declared schema:

        state["foo"] = "bar"      # or: state.foo = "bar"
        state["missing"]          # -> None
        state.missing             # -> None

    There is no locking. Parallel Group children must not write the same key.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        object.__setattr__(self, "_data", dict(initial or {}))

    def __getitem__(self, key: str) -> Any:
        return self._data.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def pop(self, key: str, default: Any = _MISSING) -> Any:
        if default is _MISSING:
            return self._data.pop(key)
        return self._data.pop(key, default)

    def setdefault(self, key: str, default: Any = None) -> Any:
        return self._data.setdefault(key, default)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self._data.get(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self._data[name] = value

    def __delattr__(self, name: str) -> None:
        self._data.pop(name, None)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    def __repr__(self) -> str:
        return f"ExecutionState({self._data!r})"


class CancellationToken:
    """
    Cooperative cancellation signal for one root execution.

    The engine checks it before starting each node. Long-running node work
    should call raise_if_cancelled() at reasonable intervals, or await wait().
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExecutionCancelledError()

    async def wait(self) -> None:
        await self._event.wait()


class ExecutionContext(Generic[T]):
    """Context threaded by reference through a node sub-tree."""

    def __init__(
        self,
        subject: T,
        global_options: GlobalOptions | None = None,
        state: Mapping[str, Any] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self._subject = subject
        if isinstance(global_options, MappingProxyType):
            self._global_options = global_options
        else:
            self._global_options = MappingProxyType(dict(global_options or {}))
        self.state = state if isinstance(state, ExecutionState) else ExecutionState(state)
        self.cancellation = cancellation or CancellationToken()

    @property
    def subject(self) -> T:
        return self._subject

    def change_subject(self, subject: T) -> None:
        """Replace the subject for every node holding this context."""
        self._subject = subject

    @property
    def global_options(self) -> GlobalOptions:
        return self._global_options

    @property
    def parent_result(self) -> NodeResult | None:
        """Result of the node currently executing in this task."""
        return _current_result.get()

    @property
    def cancel_processing(self) -> bool:
        return self.cancellation.cancelled

    def create_child_context(self, subject: D) -> "ExecutionContext[D]":
        """Build a context for a differently-typed sub-tree.

        Options and cancellation are shared, state starts empty.
        """
        return ExecutionContext(
            subject,
            global_options=self._global_options,
            cancellation=self.cancellation,
        )

    def __repr__(self) -> str:
        return f"ExecutionContext(subject={self._subject!r}, state={self.state!r})"
