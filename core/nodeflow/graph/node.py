"""
Node - the atomic executable unit.

Every node carries a NodeKind tag. The execution rules for each kind live in
one place, nodeflow.graph.executor.execute_node; node classes only supply
their work, hooks and predicates.

Lifecycle of a single execution:
    predicate -> before_execute -> work -> after_execute -> status

Example:
    class LoadCustomer(Node):
        async def perform_execute(self, context):
            context.state.customer = await fetch(context.subject.customer_id)
            return NodeResultStatus.SUCCEEDED

    result = await LoadCustomer().execute(order)
"""

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, Generic, TypeVar

from nodeflow.graph.context import CancellationToken, ExecutionContext, GlobalOptions
from nodeflow.graph.result import NodeResult, NodeResultStatus, NodeRunStatus

T = TypeVar("T")

ShouldExecuteFunc = Callable[[ExecutionContext[Any]], bool]
ShouldExecuteFuncAsync = Callable[[ExecutionContext[Any]], Awaitable[bool]]
ExecutedFunc = Callable[[ExecutionContext[Any]], Any]


class NodeKind(StrEnum):
    """Composition role of a node; selects the execution rule."""

    LEAF = "leaf"
    GROUP = "group"  # All children, concurrently
    PIPELINE = "pipeline"  # Children in order, stop at first failure
    FIRST_MATCH = "first_match"  # Children in order, stop at first success
    TRANSITION = "transition"  # One child over a different subject type


class Node(Generic[T]):
    """
    Base node.

    Leaf nodes override perform_execute(). Predicates may be supplied as
    functions (set directly or by the NodeFactory from flow components) or by
    overriding should_execute().
    """

    kind: NodeKind = NodeKind.LEAF

    def __init__(
        self,
        node_id: str | None = None,
        should_execute_func: ShouldExecuteFunc | None = None,
        should_execute_func_async: ShouldExecuteFuncAsync | None = None,
    ) -> None:
        self.id = node_id or f"{type(self).__name__}-{uuid.uuid4().hex[:8]}"
        self.flow_name: str | None = None  # Set by NodeFactory on flow roots
        self.should_execute_func = should_execute_func
        self.should_execute_func_async = should_execute_func_async
        self.status = NodeResultStatus.NOT_RUN
        self.run_status = NodeRunStatus.NOT_RUN
        self.result: NodeResult | None = None

    @property
    def supports_children(self) -> bool:
        return False

    async def should_execute(self, context: ExecutionContext[T]) -> bool:
        """Fallback predicate when no predicate function is set."""
        return True

    async def before_execute(self, context: ExecutionContext[T]) -> None:
        """Hook run before the node's work."""

    async def after_execute(self, context: ExecutionContext[T]) -> None:
        """Hook run after the node's work."""

    async def perform_execute(self, context: ExecutionContext[T]) -> NodeResultStatus:
        """The node's own work. Leaf nodes must override this."""
        raise NotImplementedError(f"{type(self).__name__} does not implement perform_execute")

    async def execute(
        self,
        subject_or_context: T | ExecutionContext[T],
        global_options: GlobalOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> NodeResult:
        """
        Execute this node (and its sub-tree) against a subject or a context.

        Failures never raise; inspect the returned result's status and
        get_fail_exceptions().
        """
        from nodeflow.graph.executor import execute_root

        if isinstance(subject_or_context, ExecutionContext):
            context = subject_or_context
        else:
            context = ExecutionContext(
                subject_or_context,
                global_options=global_options,
                cancellation=cancellation,
            )
        return await execute_root(self, context)

    def execute_sync(
        self,
        subject_or_context: T | ExecutionContext[T],
        global_options: GlobalOptions | None = None,
    ) -> NodeResult:
        """Run execute() on a fresh event loop. Not for use inside a running loop."""
        return asyncio.run(self.execute(subject_or_context, global_options=global_options))

    def reset(self) -> None:
        """Return this node to its unrun state so it can execute again."""
        self.status = NodeResultStatus.NOT_RUN
        self.run_status = NodeRunStatus.NOT_RUN
        self.result = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, status={self.status})"


class FuncNode(Node[T]):
    """
    Leaf node whose work is a plain function.

    The function may be sync or async and may return a NodeResultStatus, a
    bool (True -> succeeded, False -> failed) or None (succeeded).
    """

    def __init__(
        self,
        executed_func: ExecutedFunc | None = None,
        node_id: str | None = None,
        should_execute_func: ShouldExecuteFunc | None = None,
        should_execute_func_async: ShouldExecuteFuncAsync | None = None,
    ) -> None:
        super().__init__(
            node_id=node_id,
            should_execute_func=should_execute_func,
            should_execute_func_async=should_execute_func_async,
        )
        self.executed_func = executed_func

    async def perform_execute(self, context: ExecutionContext[T]) -> NodeResultStatus:
        if self.executed_func is None:
            raise ValueError(f"FuncNode {self.id} has no executed_func")
        outcome = self.executed_func(context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return to_status(outcome)


def to_status(outcome: Any) -> NodeResultStatus:
    """Normalise what node work returned into a NodeResultStatus."""
    if outcome is None:
        return NodeResultStatus.SUCCEEDED
    if isinstance(outcome, NodeResultStatus):
        return outcome
    if isinstance(outcome, bool):
        return NodeResultStatus.SUCCEEDED if outcome else NodeResultStatus.FAILED
    return NodeResultStatus(outcome)
