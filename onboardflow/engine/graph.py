"""
Route Table for the Workflow Engine.

The Graph is the static structure of a workflow - steps, direct edges and
conditional routers. It is built once at startup and owns no mutable
state; routers only inspect fields already present in state.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Union
from dataclasses import dataclass, field
from enum import Enum

from onboardflow.engine.errors import RoutingError
from onboardflow.engine.node import Step, StepKind, create_step


# Special step names
END = "__END__"
START = "__START__"

RouterFn = Callable[[Mapping[str, Any]], str]


class EdgeType(str, Enum):
    """Types of edges between steps."""
    DIRECT = "direct"            # Always follow this edge
    CONDITIONAL = "conditional"  # Choose based on state


@dataclass
class ConditionalEdge:
    """
    A conditional edge that routes to different steps based on state.

    The router receives the current state data and returns a route key.
    When ``routes`` is given it maps route keys to target step names;
    otherwise the router returns target step names directly.
    """
    source: str
    router: RouterFn
    routes: Optional[Dict[str, str]] = None

    @property
    def targets(self) -> List[str]:
        return list(self.routes.values()) if self.routes else []

    def evaluate(self, state_data: Mapping[str, Any]) -> str:
        """Evaluate the router and return the target step name."""
        route_key = self.router(state_data)
        if self.routes is None:
            return route_key
        if route_key not in self.routes:
            raise RoutingError(
                f"Router for '{self.source}' returned unknown route '{route_key}'. "
                f"Available routes: {list(self.routes.keys())}"
            )
        return self.routes[route_key]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "router": getattr(self.router, "__name__", str(self.router)),
            "routes": self.routes,
        }


@dataclass
class Graph:
    """
    A workflow graph consisting of steps and edges.

    Attributes:
        name: Human-readable name
        steps: Dict of step_name -> Step
        edges: Direct edges, source -> target
        conditional_edges: Dict of source_step -> ConditionalEdge
        entry_point: Name of the step a new (or finished) thread starts at
    """

    name: str = "Unnamed Workflow"
    steps: Dict[str, Step] = field(default_factory=dict)
    edges: Dict[str, str] = field(default_factory=dict)
    conditional_edges: Dict[str, ConditionalEdge] = field(default_factory=dict)
    entry_point: Optional[str] = None
    description: str = ""

    def add_step(
        self,
        handler: Callable,
        name: Optional[str] = None,
        kind: Optional[StepKind] = None,
    ) -> "Graph":
        """
        Add a step to the graph.

        The name and kind default to the metadata attached with the
        ``@step`` decorator, falling back to the function name.

        Returns:
            Self for chaining
        """
        new_step = create_step(handler, name)
        if kind is not None:
            new_step.kind = kind

        if new_step.name in (END, START):
            raise ValueError(f"'{new_step.name}' is a reserved step name")
        if new_step.name in self.steps:
            raise ValueError(f"Step '{new_step.name}' already exists in the graph")

        self.steps[new_step.name] = new_step

        # First step added is the entry point unless set explicitly
        if self.entry_point is None:
            self.entry_point = new_step.name

        return self

    def add_steps(self, handlers: Iterable[Callable]) -> "Graph":
        for handler in handlers:
            self.add_step(handler)
        return self

    def add_edge(self, source: str, target: str) -> "Graph":
        """
        Add a direct edge from source to target.

        Args:
            source: Source step name
            target: Target step name (or END)

        Returns:
            Self for chaining
        """
        if source not in self.steps:
            raise ValueError(f"Source step '{source}' not found in graph")
        if target != END and target not in self.steps:
            raise ValueError(f"Target step '{target}' not found in graph")
        if source in self.conditional_edges:
            raise ValueError(
                f"Step '{source}' already has a conditional edge. "
                f"Cannot add a direct edge."
            )

        self.edges[source] = target
        return self

    def add_conditional_edge(
        self,
        source: str,
        router: RouterFn,
        routes: Optional[Union[Dict[str, str], List[str]]] = None,
    ) -> "Graph":
        """
        Add a conditional edge from source step.

        Args:
            source: Source step name
            router: Pure function of state returning a route key
            routes: Optional mapping of route keys to target steps. Pass a
                list of step names for routers that return step names.

        Returns:
            Self for chaining
        """
        if source not in self.steps:
            raise ValueError(f"Source step '{source}' not found in graph")

        if isinstance(routes, (list, tuple, set)):
            routes = {target: target for target in routes}

        for route_key, target in (routes or {}).items():
            if target != END and target not in self.steps:
                raise ValueError(
                    f"Target step '{target}' for route '{route_key}' not found in graph"
                )

        if source in self.edges:
            raise ValueError(
                f"Step '{source}' already has a direct edge. "
                f"Cannot add a conditional edge."
            )

        self.conditional_edges[source] = ConditionalEdge(
            source=source,
            router=router,
            routes=dict(routes) if routes is not None else None,
        )
        return self

    def set_entry_point(self, step_name: str) -> "Graph":
        """Set the entry point of the graph."""
        if step_name not in self.steps:
            raise ValueError(f"Step '{step_name}' not found in graph")
        self.entry_point = step_name
        return self

    def get_step(self, name: str) -> Step:
        try:
            return self.steps[name]
        except KeyError:
            raise RoutingError(f"Step '{name}' not found in graph") from None

    def get_next_step(self, current_step: str, state_data: Mapping[str, Any]) -> str:
        """
        Get the next step to execute based on edges and state.

        Deterministic for a fixed state snapshot; performs no I/O.

        Returns:
            Next step name or END. A step without outgoing edges ends the run.
        """
        if current_step in self.conditional_edges:
            target = self.conditional_edges[current_step].evaluate(state_data)
        elif current_step in self.edges:
            target = self.edges[current_step]
        else:
            return END

        if target != END and target not in self.steps:
            raise RoutingError(
                f"Router for '{current_step}' selected unknown step '{target}'"
            )
        return target

    def validate(self) -> List[str]:
        """
        Validate the graph structure.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.steps:
            errors.append("Graph must have at least one step")
            return errors

        if not self.entry_point:
            errors.append("Graph must have an entry point")
        elif self.entry_point not in self.steps:
            errors.append(f"Entry point '{self.entry_point}' not found in steps")

        reachable = self._get_reachable_steps()
        # Routers without a declared route map may reach anything
        if not any(c.routes is None for c in self.conditional_edges.values()):
            orphans = set(self.steps.keys()) - reachable
            if orphans:
                errors.append(f"Orphan steps (not reachable): {sorted(orphans)}")

        return errors

    def _get_reachable_steps(self) -> Set[str]:
        """Get all steps reachable from the entry point."""
        if not self.entry_point:
            return set()

        reachable = set()
        to_visit = [self.entry_point]

        while to_visit:
            name = to_visit.pop()
            if name in reachable or name == END:
                continue

            reachable.add(name)

            if name in self.edges:
                to_visit.append(self.edges[name])

            if name in self.conditional_edges:
                to_visit.extend(self.conditional_edges[name].targets)

        return reachable

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph to a dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "steps": {name: s.to_dict() for name, s in self.steps.items()},
            "edges": self.edges,
            "conditional_edges": {
                name: edge.to_dict()
                for name, edge in self.conditional_edges.items()
            },
            "entry_point": self.entry_point,
        }

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the graph."""
        lines = ["graph TD"]

        def node_id(name: str) -> str:
            return name.replace("-", "_")

        for name, s in self.steps.items():
            if s.kind == StepKind.INTERRUPT:
                lines.append(f'    {node_id(name)}[/"{name}"/]')
            elif s.kind == StepKind.ROUTER:
                lines.append(f'    {node_id(name)}{{"{name}"}}')
            else:
                lines.append(f'    {node_id(name)}["{name}"]')

        has_end = END in self.edges.values() or any(
            END in c.targets for c in self.conditional_edges.values()
        )
        if has_end:
            lines.append(f'    {END}(("END"))')

        for source, target in self.edges.items():
            lines.append(f"    {node_id(source)} --> {node_id(target)}")

        for source, cond in self.conditional_edges.items():
            for route_key, target in (cond.routes or {}).items():
                if route_key == target:
                    lines.append(f"    {node_id(source)} -.-> {node_id(target)}")
                else:
                    lines.append(f"    {node_id(source)} -->|{route_key}| {node_id(target)}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"Graph(name='{self.name}', steps={list(self.steps.keys())}, "
            f"entry='{self.entry_point}')"
        )
