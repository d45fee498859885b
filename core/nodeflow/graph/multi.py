"""
Multi-nodes: nodes that own an ordered list of children.

- GroupNode: every child runs, concurrently (bounded by max_parallelism)
- PipelineNode: children run in order, the first failure stops the rest
- FirstMatchNode: children run in order, the first success stops the rest

How child outcomes combine into the parent's status is a per-node
CombinePolicy; there is no universal partial-success threshold.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from nodeflow.config import get_allow_partial_success, get_max_parallelism
from nodeflow.graph.node import Node, NodeKind, ShouldExecuteFunc, ShouldExecuteFuncAsync
from nodeflow.graph.result import NodeResult, NodeResultStatus

T = TypeVar("T")


@dataclass
class CombinePolicy:
    """Configuration for combining child results into a parent status."""

    # Mixed outcomes count as group_succeeded_with_errors when True,
    # group_failed when False
    allow_partial_success: bool = field(default_factory=get_allow_partial_success)

    # Most failed children still tolerated as partial success (None = no limit)
    max_failures: int | None = None

    # Pipelines only: keep running after a failed child
    continue_on_failure: bool = False

    def combine(self, child_results: list[NodeResult]) -> NodeResultStatus:
        """
        Combine child statuses. Children that did not run are neutral.

        Returns:
            succeeded if nothing failed, group_failed_all_child_nodes if every
            child that ran failed, otherwise the policy's mixed outcome.
        """
        ran = [r for r in child_results if r.status != NodeResultStatus.NOT_RUN]
        failed = sum(1 for r in ran if r.status.is_failure())
        partial = sum(1 for r in ran if r.status == NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS)

        if failed == 0 and partial == 0:
            return NodeResultStatus.SUCCEEDED
        if failed == len(ran):
            return NodeResultStatus.GROUP_FAILED_ALL_CHILD_NODES
        if self.allow_partial_success and (
            self.max_failures is None or failed <= self.max_failures
        ):
            return NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS
        return NodeResultStatus.GROUP_FAILED


class MultiNode(Node[T]):
    """Base for nodes composing an ordered set of children."""

    def __init__(
        self,
        children: Iterable[Node[Any]] | None = None,
        policy: CombinePolicy | None = None,
        node_id: str | None = None,
        should_execute_func: ShouldExecuteFunc | None = None,
        should_execute_func_async: ShouldExecuteFuncAsync | None = None,
    ) -> None:
        super().__init__(
            node_id=node_id,
            should_execute_func=should_execute_func,
            should_execute_func_async=should_execute_func_async,
        )
        self.children: list[Node[Any]] = list(children or [])
        self.policy = policy or CombinePolicy()

    @property
    def supports_children(self) -> bool:
        return True

    def add_child(self, child: Node[Any]) -> "MultiNode[T]":
        self.children.append(child)
        return self

    def add_children(self, children: Iterable[Node[Any]]) -> "MultiNode[T]":
        self.children.extend(children)
        return self

    def reset(self) -> None:
        super().reset()
        for child in self.children:
            child.reset()


class GroupNode(MultiNode[T]):
    """Runs every child regardless of failures, concurrently."""

    kind = NodeKind.GROUP

    def __init__(
        self,
        children: Iterable[Node[Any]] | None = None,
        policy: CombinePolicy | None = None,
        max_parallelism: int | None = None,
        node_id: str | None = None,
        should_execute_func: ShouldExecuteFunc | None = None,
        should_execute_func_async: ShouldExecuteFuncAsync | None = None,
    ) -> None:
        super().__init__(
            children=children,
            policy=policy,
            node_id=node_id,
            should_execute_func=should_execute_func,
            should_execute_func_async=should_execute_func_async,
        )
        self.max_parallelism = max_parallelism

    def effective_parallelism(self) -> int | None:
        """Per-node limit, else the configured engine default."""
        if self.max_parallelism is not None:
            return self.max_parallelism
        return get_max_parallelism()


class PipelineNode(MultiNode[T]):
    """Runs children in order; the first failure leaves the rest not_run."""

    kind = NodeKind.PIPELINE


class FirstMatchNode(MultiNode[T]):
    """Runs children in order until one succeeds."""

    kind = NodeKind.FIRST_MATCH
