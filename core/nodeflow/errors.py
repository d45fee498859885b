"""
Error taxonomy for nodeflow.

Two families:
- FlowConfigurationError: raised while building a node tree from flow
  components. These fail fast and are never deferred to execution time.
- NodeExecutionError: captured on a NodeResult during execution. The engine
  never raises these past a node boundary.
"""

from typing import Any


class NodeflowError(Exception):
    """Base exception for all nodeflow errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ---------------------------------------------------------------------------
# Build-time configuration errors
# ---------------------------------------------------------------------------


class FlowConfigurationError(NodeflowError):
    """Raised when a flow description cannot be turned into a node tree."""


class FlowNotFoundError(FlowConfigurationError):
    """Raised when no flow is registered under a name."""

    def __init__(self, flow_name: str) -> None:
        super().__init__(
            message=f"Flow not found: {flow_name}",
            details={"flow_name": flow_name},
        )
        self.flow_name = flow_name


class NodeNotFoundError(FlowConfigurationError):
    """Raised when no node registration matches a (type, name) pair."""

    def __init__(self, node_type: Any, name: str | None = None) -> None:
        type_label = _type_label(node_type)
        label = f"{type_label} (name={name!r})" if name else type_label
        super().__init__(
            message=f"Node type not found: {label}",
            details={"node_type": type_label, "name": name},
        )
        self.node_type = node_type
        self.name = name


class NodeTypeMismatchError(FlowConfigurationError):
    """Raised when a registration exists but produces the wrong kind of object."""

    def __init__(self, node_type: Any, name: str | None, actual: Any) -> None:
        super().__init__(
            message=(
                f"Registration for {_type_label(node_type)} (name={name!r}) "
                f"produced {type(actual).__name__}"
            ),
            details={
                "node_type": _type_label(node_type),
                "name": name,
                "actual_type": type(actual).__name__,
            },
        )
        self.node_type = node_type
        self.name = name
        self.actual = actual


class FlowCycleError(FlowConfigurationError):
    """Raised when a flow references itself, directly or transitively."""

    def __init__(self, path: list[str]) -> None:
        super().__init__(
            message=f"Cyclic flow reference: {' -> '.join(path)}",
            details={"path": list(path)},
        )
        self.path = list(path)


# ---------------------------------------------------------------------------
# Execution errors (captured on results, never raised across nodes)
# ---------------------------------------------------------------------------


class NodeExecutionError(NodeflowError):
    """Base for errors recorded while executing a node."""


class NodeAlreadyRunError(NodeExecutionError):
    """Recorded when a node is executed again without reset()."""

    def __init__(self, node_id: str, status: str) -> None:
        super().__init__(
            message=f"Node {node_id} already ran (status={status}); call reset() first",
            details={"node_id": node_id, "status": status},
        )
        self.node_id = node_id
        self.status = status


class ExecutionCancelledError(NodeExecutionError):
    """Raised by CancellationToken.raise_if_cancelled() inside node work."""

    def __init__(self, message: str = "Execution was cancelled") -> None:
        super().__init__(message=message)


def _type_label(node_type: Any) -> str:
    if isinstance(node_type, type):
        return node_type.__name__
    return str(node_type)
