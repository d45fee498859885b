"""
Registries consulted by the NodeFactory.

NodeRegistry maps (node_type, optional name) to a factory producing a fresh
node per lookup, so one registration can appear many times in a tree and in
separately built trees without sharing state.

FlowRegistry maps flow names to root flow components.
"""

import logging
from collections.abc import Callable
from typing import Any

from nodeflow.errors import (
    FlowConfigurationError,
    FlowNotFoundError,
    NodeNotFoundError,
    NodeTypeMismatchError,
)
from nodeflow.flow.component import FlowComponent
from nodeflow.graph.node import ExecutedFunc, FuncNode, Node

logger = logging.getLogger(__name__)

NodeFactoryFunc = Callable[[], Node[Any]]


class NodeRegistry:
    """Registry of node factories keyed by (node_type, name)."""

    def __init__(self) -> None:
        self._factories: dict[tuple[Any, str | None], NodeFactoryFunc] = {}

    def register(
        self,
        node_type: type | str,
        factory: NodeFactoryFunc | None = None,
        name: str | None = None,
    ) -> None:
        """
        Register a node type.

        Args:
            node_type: Node subclass, or a string key for factory-only registrations
            factory: Zero-argument callable returning a new node; defaults to
                node_type itself when it is a class
            name: Optional registration name; None is the default registration
        """
        if factory is None:
            if not isinstance(node_type, type):
                raise ValueError(f"String node type {node_type!r} requires a factory")
            factory = node_type
        key = (node_type, name)
        if key in self._factories:
            logger.warning(f"Replacing node registration {key}")
        self._factories[key] = factory

    def register_function(
        self, node_type: str, func: ExecutedFunc, name: str | None = None
    ) -> None:
        """Register a function as a FuncNode under a string key."""
        self.register(node_type, factory=lambda: FuncNode(func), name=name)

    def has_node(self, node_type: type | str, name: str | None = None) -> bool:
        return (node_type, name) in self._factories

    def get_node(self, node_type: type | str, name: str | None = None) -> Node[Any]:
        """
        Construct the node registered for (node_type, name).

        Raises:
            NodeNotFoundError: nothing registered under the pair
            NodeTypeMismatchError: the factory produced something that is not
                a Node, or not an instance of the requested class
        """
        factory = self._factories.get((node_type, name))
        if factory is None:
            raise NodeNotFoundError(node_type, name)

        node = factory()
        if not isinstance(node, Node) or (
            isinstance(node_type, type) and not isinstance(node, node_type)
        ):
            raise NodeTypeMismatchError(node_type, name, node)
        return node

    def list(self) -> list[tuple[Any, str | None]]:
        return list(self._factories)


class FlowRegistry:
    """Registry of flow roots by name."""

    def __init__(self) -> None:
        self._flows: dict[str, FlowComponent] = {}

    def register(self, flow: FlowComponent, replace: bool = False) -> None:
        if not flow.is_flow or not flow.name:
            raise FlowConfigurationError(
                "Only named flow components (is_flow=True) can be registered as flows",
                details={"component": flow.label},
            )
        if flow.name in self._flows and not replace:
            raise FlowConfigurationError(
                f"Flow already registered: {flow.name}", details={"flow_name": flow.name}
            )
        self._flows[flow.name] = flow

    def has_flow(self, name: str) -> bool:
        return name in self._flows

    def get_flow_root(self, name: str) -> FlowComponent:
        flow = self._flows.get(name)
        if flow is None:
            raise FlowNotFoundError(name)
        return flow

    def list(self) -> list[str]:
        return list(self._flows)
