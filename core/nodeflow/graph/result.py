"""
Result model for node execution.

A NodeResult tree mirrors the node tree that produced it. Status of a leaf
comes from its own work; status of a multi-node is always derived from its own
step plus the combine rule over its children.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, TypeVar

T = TypeVar("T")


class NodeResultStatus(StrEnum):
    """Outcome of executing a node."""

    NOT_RUN = "not_run"  # Predicate false, cancelled, or short-circuited
    SUCCEEDED = "succeeded"
    FAILED = "failed"  # Leaf work raised or returned failure
    SINGLE_NODE_FAILED = "single_node_failed"  # Multi-node's own hook failed
    GROUP_SUCCEEDED_WITH_ERRORS = "group_succeeded_with_errors"
    GROUP_FAILED = "group_failed"
    GROUP_FAILED_ALL_CHILD_NODES = "group_failed_all_child_nodes"

    def is_failure(self) -> bool:
        """Check if this status should stop a pipeline."""
        return self in (
            NodeResultStatus.FAILED,
            NodeResultStatus.SINGLE_NODE_FAILED,
            NodeResultStatus.GROUP_FAILED,
            NodeResultStatus.GROUP_FAILED_ALL_CHILD_NODES,
        )

    def is_success(self) -> bool:
        """Check if this status counts as (possibly partial) success."""
        return self in (
            NodeResultStatus.SUCCEEDED,
            NodeResultStatus.GROUP_SUCCEEDED_WITH_ERRORS,
        )


class NodeRunStatus(StrEnum):
    """Lifecycle of the node object itself."""

    NOT_RUN = "not_run"
    RUNNING = "running"
    COMPLETED = "completed"
    FAULTED = "faulted"


@dataclass
class NodeResult:
    """Result of executing one node, with child results for multi-nodes."""

    node_id: str
    status: NodeResultStatus = NodeResultStatus.NOT_RUN
    exception: BaseException | None = None
    subject: Any = None
    children: list["NodeResult"] = field(default_factory=list)

    # Set by transition nodes: the destination sub-tree's result. Not walked by
    # get_fail_exceptions(), its exceptions are already attached to `exception`.
    transition_result: "NodeResult | None" = None

    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_success(self) -> bool:
        return self.status.is_success()

    @property
    def is_failure(self) -> bool:
        return self.status.is_failure()

    @property
    def latency_ms(self) -> int:
        if self.started_at is None or self.ended_at is None:
            return 0
        return int((self.ended_at - self.started_at).total_seconds() * 1000)

    def mark_started(self) -> None:
        self.started_at = datetime.now(UTC)

    def mark_ended(self) -> None:
        self.ended_at = datetime.now(UTC)

    def get_fail_exceptions(self) -> list[BaseException]:
        """
        Gather every exception in this result tree, depth first.

        Own exception first, then children in declaration order. Each result
        is visited once, so every exception appears exactly once.
        """
        exceptions: list[BaseException] = []
        stack: list[NodeResult] = [self]
        while stack:
            current = stack.pop()
            if current.exception is not None:
                exceptions.append(current.exception)
            stack.extend(reversed(current.children))
        return exceptions

    @property
    def aggregate_exception(self) -> BaseException | None:
        """Single exception, an ExceptionGroup of all of them, or None."""
        exceptions = self.get_fail_exceptions()
        if not exceptions:
            return None
        if len(exceptions) == 1:
            return exceptions[0]
        return BaseExceptionGroup(
            f"{len(exceptions)} exceptions under node {self.node_id}", exceptions
        )

    def get_subject_as(self, type_: type[T]) -> T:
        """Return the subject snapshot, checked against the expected type."""
        if not isinstance(self.subject, type_):
            raise TypeError(
                f"Subject of {self.node_id} is {type(self.subject).__name__}, "
                f"expected {type_.__name__}"
            )
        return self.subject

