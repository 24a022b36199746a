"""Topological ordering with cycle detection via three-color depth-first search."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

_UNVISITED, _VISITING, _VISITED = 0, 1, 2


class CycleError(ValueError):
    """Raised when a cycle is detected in a directed graph."""

    def __init__(self, node: str) -> None:
        self.node = node
        super().__init__(f"Circular dependency detected at step: {node}")


def topological_order(
    nodes: Iterable[str],
    edges: Mapping[str, Iterable[str]],
) -> list[str]:
    """Return *nodes* ordered so every node comes after the nodes it depends on.

    Args:
        nodes: Node names, in declaration order. The order is preserved
               wherever dependencies allow it.
        edges: Mapping from node → nodes it depends on
               (``edges[A] = [B, C]`` means A depends on B and C).
               Dependencies that are not in *nodes* are ignored.

    Raises:
        CycleError: Naming the node that was re-entered while still being visited.
    """
    order = list(nodes)
    known = set(order)
    color = dict.fromkeys(order, _UNVISITED)
    result: list[str] = []

    def visit(node: str) -> None:
        state = color[node]
        if state == _VISITED:
            return
        if state == _VISITING:
            raise CycleError(node)
        color[node] = _VISITING
        for dep in edges.get(node, ()):
            if dep in known:
                visit(dep)
        color[node] = _VISITED
        result.append(node)

    for node in order:
        visit(node)
    return result
