"""
Transition nodes bridge two differently-typed sub-trees.

A transition converts the source subject into a destination subject, runs its
single child against a new context, then converts back:

    transition_source(context)          source -> destination
    transition_result(context, result)  destination result -> source

Subclasses override the two mappers (sync or async). FuncTransitionNode takes
them as arguments instead.
"""

import inspect
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from nodeflow.errors import FlowConfigurationError
from nodeflow.graph.context import ExecutionContext
from nodeflow.graph.node import Node, NodeKind, ShouldExecuteFunc, ShouldExecuteFuncAsync
from nodeflow.graph.result import NodeResult

S = TypeVar("S")
D = TypeVar("D")

SourceMapper = Callable[[ExecutionContext[Any]], Any]
ResultMapper = Callable[[ExecutionContext[Any], NodeResult], Any]


class TransitionNode(Node[S], Generic[S, D]):
    """Node over subject S whose child runs over subject D."""

    kind = NodeKind.TRANSITION

    def __init__(
        self,
        child_node: Node[D] | None = None,
        destination_type: type[D] | None = None,
        node_id: str | None = None,
        should_execute_func: ShouldExecuteFunc | None = None,
        should_execute_func_async: ShouldExecuteFuncAsync | None = None,
    ) -> None:
        super().__init__(
            node_id=node_id,
            should_execute_func=should_execute_func,
            should_execute_func_async=should_execute_func_async,
        )
        self.child_node = child_node
        self.destination_type = destination_type

    @property
    def supports_children(self) -> bool:
        return True

    def add_child(self, child: Node[D]) -> "TransitionNode[S, D]":
        if self.child_node is not None:
            raise FlowConfigurationError(
                f"Transition node {self.id} already has child {self.child_node.id}",
                details={"node_id": self.id, "child_id": self.child_node.id},
            )
        self.child_node = child
        return self

    def transition_source(self, context: ExecutionContext[S]) -> D | None:
        """Build the destination subject. Default: destination_type() or None."""
        if self.destination_type is None:
            return None
        return self.destination_type()

    def transition_result(self, context: ExecutionContext[S], result: NodeResult) -> S:
        """Build the source subject after the child ran. Default: unchanged."""
        return context.subject

    async def map_source(self, context: ExecutionContext[S]) -> D | None:
        value = self.transition_source(context)
        if inspect.isawaitable(value):
            value = await value
        return value

    async def map_result(self, context: ExecutionContext[S], result: NodeResult) -> S:
        value = self.transition_result(context, result)
        if inspect.isawaitable(value):
            value = await value
        return value

    def reset(self) -> None:
        super().reset()
        if self.child_node is not None:
            self.child_node.reset()


class FuncTransitionNode(TransitionNode[S, D]):
    """Transition node configured with mapping functions."""

    def __init__(
        self,
        source_func: SourceMapper | None = None,
        result_func: ResultMapper | None = None,
        child_node: Node[D] | None = None,
        destination_type: type[D] | None = None,
        node_id: str | None = None,
        should_execute_func: ShouldExecuteFunc | None = None,
        should_execute_func_async: ShouldExecuteFuncAsync | None = None,
    ) -> None:
        super().__init__(
            child_node=child_node,
            destination_type=destination_type,
            node_id=node_id,
            should_execute_func=should_execute_func,
            should_execute_func_async=should_execute_func_async,
        )
        self.source_func = source_func
        self.result_func = result_func

    def transition_source(self, context: ExecutionContext[S]) -> Any:
        if self.source_func is None:
            return super().transition_source(context)
        return self.source_func(context)

    def transition_result(self, context: ExecutionContext[S], result: NodeResult) -> Any:
        if self.result_func is None:
            return super().transition_result(context, result)
        return self.result_func(context, result)
