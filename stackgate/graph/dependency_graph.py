"""Dependency graph over service descriptors with load-time cycle detection."""

from __future__ import annotations

from collections.abc import Iterator, Sequence

from stackgate.domain import ConfigurationError, CycleError
from stackgate.manifest import ServiceDescriptor

_IN_PROGRESS = "in_progress"
_DONE = "done"


class DependencyGraph:
    """Immutable DAG where edge A -> B means A must be ready before B starts.

    Instances are created only through `graph_build`, which rejects cycles and
    unknown dependency names.
    """

    def __init__(self, dependencies: dict[str, tuple[str, ...]]):
        """Initialize graph from an already validated adjacency mapping.

        Args:
            dependencies: Service name to dependency names, in declaration order.

        Raises:
            ValueError: Raised when dependencies is None.
        """

        if dependencies is None:
            raise ValueError("dependencies must not be None")
        self._dependencies = dict(dependencies)
        dependents: dict[str, list[str]] = {service_name: [] for service_name in self._dependencies}
        for service_name, dependency_names in self._dependencies.items():
            for dependency_name in dependency_names:
                dependents[dependency_name].append(service_name)
        self._dependents = {service_name: tuple(names) for service_name, names in dependents.items()}

    @classmethod
    def graph_build(cls, descriptors: Sequence[ServiceDescriptor]) -> DependencyGraph:
        """Build and validate the dependency graph.

        Args:
            descriptors: Service descriptors in declaration order.

        Returns:
            DependencyGraph: Validated acyclic graph.

        Raises:
            ConfigurationError: Raised when a dependency name does not resolve.
            CycleError: Raised when the dependency edges form a cycle.
        """

        dependencies = {descriptor.name: tuple(descriptor.depends_on) for descriptor in descriptors}
        for service_name, dependency_names in dependencies.items():
            for dependency_name in dependency_names:
                if dependency_name not in dependencies:
                    raise ConfigurationError(f"service {service_name} depends on unknown service {dependency_name}")

        marks: dict[str, str] = {}
        for service_name in dependencies:
            cls._graph_visit(service_name, dependencies, marks, [])
        return cls(dependencies)

    @staticmethod
    def _graph_visit(
        service_name: str,
        dependencies: dict[str, tuple[str, ...]],
        marks: dict[str, str],
        path: list[str],
    ) -> None:
        """Depth-first visit that raises on revisiting an in-progress node.

        Args:
            service_name: Node being visited.
            dependencies: Adjacency mapping.
            marks: Visit markers shared across the traversal.
            path: Current traversal path.

        Raises:
            CycleError: Raised with the offending path when a cycle is found.
        """

        mark = marks.get(service_name)
        if mark == _DONE:
            return
        if mark == _IN_PROGRESS:
            cycle_start = path.index(service_name)
            raise CycleError(path[cycle_start:] + [service_name])

        marks[service_name] = _IN_PROGRESS
        path.append(service_name)
        for dependency_name in dependencies[service_name]:
            DependencyGraph._graph_visit(dependency_name, dependencies, marks, path)
        path.pop()
        marks[service_name] = _DONE

    def graph_service_ids(self) -> tuple[str, ...]:
        """Return all service names in declaration order."""

        return tuple(self._dependencies)

    def graph_dependencies_of(self, service_name: str) -> tuple[str, ...]:
        """Return direct dependencies in declaration order.

        Args:
            service_name: Service identifier.

        Returns:
            tuple[str, ...]: Services that must be ready first.

        Raises:
            KeyError: Raised when the service is unknown.
        """

        return self._dependencies[service_name]

    def graph_dependents_of(self, service_name: str) -> tuple[str, ...]:
        """Return direct dependents in declaration order.

        Args:
            service_name: Service identifier.

        Returns:
            tuple[str, ...]: Services gated on this one.

        Raises:
            KeyError: Raised when the service is unknown.
        """

        return self._dependents[service_name]

    def graph_transitive_dependencies_of(self, service_name: str) -> tuple[str, ...]:
        """Return every direct or indirect dependency, nearest first.

        Args:
            service_name: Service identifier.

        Returns:
            tuple[str, ...]: Transitive dependency names without duplicates.

        Raises:
            KeyError: Raised when the service is unknown.
        """

        collected: list[str] = []
        pending = list(self._dependencies[service_name])
        while pending:
            dependency_name = pending.pop(0)
            if dependency_name in collected:
                continue
            collected.append(dependency_name)
            pending.extend(self._dependencies[dependency_name])
        return tuple(collected)

    def graph_ready_order(self) -> Iterator[str]:
        """Yield service names in a valid topological order.

        The control loop does not rely on this order; independent branches
        start concurrently. It is used for diagnostics and logging.

        Returns:
            Iterator[str]: Lazy topological sequence, dependencies first.

        Raises:
            RuntimeError: This generator does not raise runtime errors.
        """

        emitted: set[str] = set()
        for root_name in self._dependencies:
            if root_name in emitted:
                continue
            stack: list[tuple[str, Iterator[str]]] = [(root_name, iter(self._dependencies[root_name]))]
            while stack:
                node_name, children = stack[-1]
                child_name = next((name for name in children if name not in emitted), None)
                if child_name is not None:
                    stack.append((child_name, iter(self._dependencies[child_name])))
                    continue
                stack.pop()
                if node_name not in emitted:
                    emitted.add(node_name)
                    yield node_name

    def graph_shutdown_order(self) -> tuple[str, ...]:
        """Return a reverse topological order, dependents first.

        Returns:
            tuple[str, ...]: Shutdown order for sequential diagnostics.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return tuple(reversed(list(self.graph_ready_order())))
