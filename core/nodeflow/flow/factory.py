"""
Node Factory - resolves flow components into executable node trees.

Resolution is recursive and depth first:
1. get_flow(name) looks up the flow root and builds its single root node,
   passing the flow's predicates down to it
2. Each component is either a flow reference (resolved recursively, so
   sub-flows are composed by reference) or a (node_type, name) lookup
3. The component's own predicates win over the ones passed in, and a
   referenced flow's predicates win over the referencing caller's
4. Children are built in declaration order and attached with add_child()

Flow names currently being resolved are carried on an explicit stack; seeing a
name again means the flow references itself and FlowCycleError is raised.
All errors here are configuration errors raised at build time.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from nodeflow.errors import FlowConfigurationError, FlowCycleError
from nodeflow.flow.component import FlowComponent
from nodeflow.flow.registry import FlowRegistry, NodeRegistry
from nodeflow.graph.node import Node

logger = logging.getLogger(__name__)


class NodeFactory:
    """
    Builds node trees from registered flows.

    Example:
        factory = NodeFactory(node_registry, flow_registry)
        flow = factory.get_flow("checkout")
        result = await flow.execute(order)
    """

    def __init__(self, node_registry: NodeRegistry, flow_registry: FlowRegistry) -> None:
        self.node_registry = node_registry
        self.flow_registry = flow_registry

    def get_node(self, node_type: type | str, name: str | None = None) -> Node[Any]:
        return self.node_registry.get_node(node_type, name)

    def has_flow(self, name: str) -> bool:
        return self.flow_registry.has_flow(name)

    def get_flow(self, name: str) -> Node[Any]:
        """Build a fresh node tree for the named flow."""
        if not name:
            raise ValueError("Flow name must be a non-empty string")
        node = self._build_flow(name, stack=())
        logger.info(f"✓ Built flow {name}: root {node.id}")
        return node

    def build_node(
        self,
        component: FlowComponent,
        should_execute_async: Callable[[Any], Awaitable[bool]] | None = None,
        should_execute: Callable[[Any], bool] | None = None,
    ) -> Node[Any]:
        """
        Build a node from a component.

        Args:
            component: Component describing the node or flow reference
            should_execute_async: Async predicate inherited from the caller
            should_execute: Sync predicate inherited from the caller
        """
        return self._build_node(component, should_execute_async, should_execute, stack=())

    def _build_flow(self, name: str, stack: tuple[str, ...]) -> Node[Any]:
        if name in stack:
            raise FlowCycleError([*stack, name])

        flow = self.flow_registry.get_flow_root(name)
        if len(flow.children) != 1:
            raise FlowConfigurationError(
                f"Flow {name} must have exactly one root node, found {len(flow.children)}",
                details={"flow_name": name},
            )

        logger.debug(f"   Resolving flow {name}")
        node = self._build_node(
            flow.children[0],
            flow.should_execute_async,
            flow.should_execute,
            stack=(*stack, name),
        )
        node.flow_name = name
        return node

    def _build_node(
        self,
        component: FlowComponent,
        should_execute_async: Callable[[Any], Awaitable[bool]] | None,
        should_execute: Callable[[Any], bool] | None,
        stack: tuple[str, ...],
    ) -> Node[Any]:
        if component.is_flow:
            node = self._build_flow(component.name, stack)
            # The referenced flow's own predicates win over the caller's
            if node.should_execute_func_async is not None:
                should_execute_async = None
            if node.should_execute_func is not None:
                should_execute = None
        else:
            node = self.node_registry.get_node(component.node_type, component.name)

        if component.id:
            node.id = component.id

        if component.should_execute_async is not None:
            node.should_execute_func_async = component.should_execute_async
        elif should_execute_async is not None:
            node.should_execute_func_async = should_execute_async

        if component.should_execute is not None:
            node.should_execute_func = component.should_execute
        elif should_execute is not None:
            node.should_execute_func = should_execute

        if component.children:
            if not node.supports_children:
                raise FlowConfigurationError(
                    f"{component.label} ({type(node).__name__}) cannot have children",
                    details={"component": component.label, "node_type": type(node).__name__},
                )
            for child in component.children:
                node.add_child(self._build_node(child, None, None, stack))

        return node
