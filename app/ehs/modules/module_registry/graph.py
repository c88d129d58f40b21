from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from app.ehs.modules.module_registry.catalog import Catalog

_WHITE, _GRAY, _BLACK = 0, 1, 2


class DependencyGraph:
    """
    Structural queries over required-dependency edges. Never looks at runtime state.

    Edges point from a module to the modules it requires. Inputs may be enum
    members or their string values; outputs are canonical catalog types.
    """

    def __init__(self, catalog: "Catalog"):
        self._catalog = catalog
        self._requires: dict[Any, tuple[Any, ...]] = {}
        self._optional: dict[Any, tuple[Any, ...]] = {}
        self._required_by: dict[Any, list[Any]] = {}
        self._optional_for: dict[Any, list[Any]] = {}

        for t in catalog:
            d = catalog[t]
            self._requires[d.type] = d.required_dependencies
            self._optional[d.type] = d.optional_dependencies
            self._required_by.setdefault(d.type, [])
            self._optional_for.setdefault(d.type, [])
        for t, deps in self._requires.items():
            for dep in deps:
                self._required_by.setdefault(dep, []).append(t)
        for t, deps in self._optional.items():
            for dep in deps:
                self._optional_for.setdefault(dep, []).append(t)

    def closure(self, module_type: Any) -> frozenset[Any]:
        """All modules transitively required by `module_type`, excluding itself."""
        root = self._catalog.resolve(module_type)
        seen: set[Any] = set()
        stack = list(reversed(self._requires.get(root, ())))
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(reversed(self._requires.get(node, ())))
        seen.discard(root)
        return frozenset(seen)

    def dependents(self, module_type: Any) -> frozenset[Any]:
        """Modules that list `module_type` as a required dependency (one hop)."""
        return frozenset(self._required_by.get(self._catalog.resolve(module_type), ()))

    def optional_dependents(self, module_type: Any) -> frozenset[Any]:
        return frozenset(self._optional_for.get(self._catalog.resolve(module_type), ()))

    def dependencies(self, module_type: Any, *, include_optional: bool = False) -> frozenset[Any]:
        t = self._catalog.resolve(module_type)
        deps = set(self._requires.get(t, ()))
        if include_optional:
            deps.update(self._optional.get(t, ()))
        return frozenset(deps)

    def detect_cycle(self) -> frozenset[Any] | None:
        """
        Three-color DFS over required edges.

        Returns the members of the first cycle found (the DFS path from the
        back-edge target to the current node), or None for an acyclic graph.
        """
        color = {t: _WHITE for t in self._requires}
        for root in self._requires:
            if color[root] != _WHITE:
                continue
            color[root] = _GRAY
            stack: list[tuple[Any, Any]] = [(root, iter(self._requires[root]))]
            while stack:
                node, children = stack[-1]
                for child in children:
                    state = color.get(child, _BLACK)
                    if state == _GRAY:
                        path = [n for n, _ in stack]
                        return frozenset(path[path.index(child):])
                    if state == _WHITE:
                        color[child] = _GRAY
                        stack.append((child, iter(self._requires[child])))
                        break
                else:
                    color[node] = _BLACK
                    stack.pop()
        return None
