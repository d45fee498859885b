"""Declarative flows: components, registries and the node factory."""

from nodeflow.flow.component import ComponentBuilder, FlowBuilder, FlowComponent
from nodeflow.flow.factory import NodeFactory
from nodeflow.flow.registry import FlowRegistry, NodeRegistry

__all__ = [
    "FlowComponent",
    "FlowBuilder",
    "ComponentBuilder",
    "NodeRegistry",
    "FlowRegistry",
    "NodeFactory",
]
