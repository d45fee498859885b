"""
nodeflow - composable node execution engine.

Nodes are assembled into trees (groups, pipelines, transitions) that execute
over a shared subject. Flows are described declaratively with FlowComponents
and turned into node trees by the NodeFactory.
"""

from nodeflow.errors import (
    ExecutionCancelledError,
    FlowConfigurationError,
    FlowCycleError,
    FlowNotFoundError,
    NodeAlreadyRunError,
    NodeExecutionError,
    NodeflowError,
    NodeNotFoundError,
    NodeTypeMismatchError,
)
from nodeflow.flow import (
    ComponentBuilder,
    FlowBuilder,
    FlowComponent,
    FlowRegistry,
    NodeFactory,
    NodeRegistry,
)
from nodeflow.graph import (
    CancellationToken,
    CombinePolicy,
    ExecutionContext,
    ExecutionState,
    FirstMatchNode,
    FuncNode,
    FuncTransitionNode,
    GroupNode,
    MultiNode,
    Node,
    NodeKind,
    NodeResult,
    NodeResultStatus,
    NodeRunStatus,
    PipelineNode,
    TransitionNode,
)

__all__ = [
    # Graph
    "ExecutionContext",
    "ExecutionState",
    "CancellationToken",
    "NodeResult",
    "NodeResultStatus",
    "NodeRunStatus",
    "Node",
    "NodeKind",
    "FuncNode",
    "MultiNode",
    "GroupNode",
    "PipelineNode",
    "FirstMatchNode",
    "CombinePolicy",
    "TransitionNode",
    "FuncTransitionNode",
    # Flow
    "FlowComponent",
    "FlowBuilder",
    "ComponentBuilder",
    "NodeRegistry",
    "FlowRegistry",
    "NodeFactory",
    # Errors
    "NodeflowError",
    "FlowConfigurationError",
    "FlowNotFoundError",
    "NodeNotFoundError",
    "NodeTypeMismatchError",
    "FlowCycleError",
    "NodeExecutionError",
    "NodeAlreadyRunError",
    "ExecutionCancelledError",
]
