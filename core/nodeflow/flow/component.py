"""
Flow Components - declarative descriptions of node trees.

A flow component never executes. The NodeFactory resolves it into live nodes:
- is_flow=True: `name` references another registered flow
- otherwise: `node_type` (a Node subclass or a registered string key) plus an
  optional registration `name`

A registered flow is itself a component with is_flow=True whose single child
describes the flow's root node. Predicates on the flow component are inherited
by that root node unless it sets its own.

Example:
    builder = FlowBuilder("checkout")
    root = builder.add_root(PipelineNode)
    root.add_child(ValidateCart).add_flow("payment").add_child(SendReceipt)
    builder.register(flow_registry)
"""

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field, model_validator

from nodeflow.errors import FlowConfigurationError


class FlowComponent(BaseModel):
    """Description of one node, or one reference to a named flow."""

    name: str | None = Field(
        default=None,
        description="Registration name of the node, or the referenced flow name when is_flow",
    )
    is_flow: bool = False
    node_type: Any = Field(
        default=None, description="Node subclass or registered string key (ignored when is_flow)"
    )
    id: str | None = Field(default=None, description="Optional id given to the built node")

    # Predicates; the component's own always win over inherited ones
    should_execute: Callable[[Any], bool] | None = None
    should_execute_async: Callable[[Any], Awaitable[bool]] | None = None

    children: list["FlowComponent"] = Field(default_factory=list)

    model_config = {"arbitrary_types_allowed": True}

    @model_validator(mode="after")
    def _check_target(self) -> "FlowComponent":
        if self.is_flow:
            if not self.name:
                raise ValueError("A flow reference requires a name")
        elif self.node_type is None:
            raise ValueError("A node component requires a node_type")
        elif not isinstance(self.node_type, (type, str)):
            raise ValueError(
                f"node_type must be a class or a string key, got {type(self.node_type).__name__}"
            )
        return self

    def add_child(self, child: "FlowComponent") -> "FlowComponent":
        self.children.append(child)
        return self

    @property
    def label(self) -> str:
        if self.is_flow:
            return f"flow:{self.name}"
        type_label = self.node_type.__name__ if isinstance(self.node_type, type) else self.node_type
        return f"{type_label}:{self.name}" if self.name else str(type_label)


class ComponentBuilder:
    """Fluent editor for one component's children and predicates."""

    def __init__(self, component: FlowComponent) -> None:
        self.component = component

    def add_child(
        self,
        node_type: type | str,
        name: str | None = None,
        node_id: str | None = None,
        should_execute: Callable[[Any], bool] | None = None,
        should_execute_async: Callable[[Any], Awaitable[bool]] | None = None,
    ) -> "ComponentBuilder":
        self.component.add_child(
            FlowComponent(
                node_type=node_type,
                name=name,
                id=node_id,
                should_execute=should_execute,
                should_execute_async=should_execute_async,
            )
        )
        return self

    def add_flow(
        self,
        flow_name: str,
        should_execute: Callable[[Any], bool] | None = None,
        should_execute_async: Callable[[Any], Awaitable[bool]] | None = None,
    ) -> "ComponentBuilder":
        self.component.add_child(
            FlowComponent(
                name=flow_name,
                is_flow=True,
                should_execute=should_execute,
                should_execute_async=should_execute_async,
            )
        )
        return self

    def for_child(self, node_type: type | str, name: str | None = None) -> "ComponentBuilder":
        """Descend into the first child matching type (and name, if given)."""
        for child in self.component.children:
            if not child.is_flow and child.node_type == node_type and (
                name is None or child.name == name
            ):
                return ComponentBuilder(child)
        raise FlowConfigurationError(
            f"No child {node_type!r} (name={name!r}) under {self.component.label}",
            details={"parent": self.component.label, "name": name},
        )

    def for_last_child(self) -> "ComponentBuilder":
        if not self.component.children:
            raise FlowConfigurationError(
                f"{self.component.label} has no children",
                details={"parent": self.component.label},
            )
        return ComponentBuilder(self.component.children[-1])

    def set_should_execute(self, func: Callable[[Any], bool]) -> "ComponentBuilder":
        self.component.should_execute = func
        return self

    def set_should_execute_async(
        self, func: Callable[[Any], Awaitable[bool]]
    ) -> "ComponentBuilder":
        self.component.should_execute_async = func
        return self


class FlowBuilder:
    """Builds a named flow: a flow component holding a single root node."""

    def __init__(self, name: str) -> None:
        self.flow = FlowComponent(name=name, is_flow=True)

    @property
    def name(self) -> str:
        return self.flow.name

    def add_root(
        self,
        node_type: type | str,
        name: str | None = None,
        node_id: str | None = None,
    ) -> ComponentBuilder:
        if self.flow.children:
            raise FlowConfigurationError(
                f"Flow {self.name} already has a root node",
                details={"flow_name": self.name},
            )
        root = FlowComponent(node_type=node_type, name=name, id=node_id)
        self.flow.add_child(root)
        return ComponentBuilder(root)

    def set_should_execute(self, func: Callable[[Any], bool]) -> "FlowBuilder":
        """Predicate inherited by the root node unless it sets its own."""
        self.flow.should_execute = func
        return self

    def set_should_execute_async(self, func: Callable[[Any], Awaitable[bool]]) -> "FlowBuilder":
        self.flow.should_execute_async = func
        return self

    def build(self) -> FlowComponent:
        if not self.flow.children:
            raise FlowConfigurationError(
                f"Flow {self.name} has no root node", details={"flow_name": self.name}
            )
        return self.flow

    def register(self, registry: Any) -> FlowComponent:
        """Build and add this flow to a FlowRegistry."""
        flow = self.build()
        registry.register(flow)
        return flow
