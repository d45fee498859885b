"""Node graph: contexts, nodes, multi-nodes, transitions and their execution."""

from nodeflow.graph.context import CancellationToken, ExecutionContext, ExecutionState
from nodeflow.graph.executor import execute_node
from nodeflow.graph.multi import (
    CombinePolicy,
    FirstMatchNode,
    GroupNode,
    MultiNode,
    PipelineNode,
)
from nodeflow.graph.node import FuncNode, Node, NodeKind
from nodeflow.graph.result import NodeResult, NodeResultStatus, NodeRunStatus
from nodeflow.graph.transition import FuncTransitionNode, TransitionNode

__all__ = [
    # Context
    "ExecutionContext",
    "ExecutionState",
    "CancellationToken",
    # Result
    "NodeResult",
    "NodeResultStatus",
    "NodeRunStatus",
    # Nodes
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
    # Executor
    "execute_node",
]
