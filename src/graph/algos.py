"""Graph algorithms for layer dependency graphs."""

from __future__ import annotations

_WHITE, _GREY, _BLACK = 0, 1, 2


def _walk_from(
    start: str,
    graph: dict[str, set[str]],
    colour: dict[str, int],
    cycles: list[list[str]],
) -> None:
    """Depth-first walk recording each back edge as a closed path."""
    path: list[str] = [start]
    pending: list[list[str]] = [sorted(graph.get(start, ()))]
    colour[start] = _GREY

    while pending:
        if not pending[-1]:
            colour[path.pop()] = _BLACK
            pending.pop()
            continue

        target = pending[-1].pop(0)
        state = colour.get(target, _WHITE)
        if state == _GREY:
            cycles.append([*path[path.index(target) :], target])
        elif state == _WHITE:
            colour[target] = _GREY
            path.append(target)
            pending.append(sorted(graph.get(target, ())))


def find_cycles(graph: dict[str, set[str]]) -> list[list[str]]:
    """Find cycles in a directed graph.

    Nodes are visited in sorted order so the result is stable. Each cycle is
    returned as a closed path whose first and last node are the same, e.g.
    ``["repository", "service", "repository"]``. A self-loop yields a
    two-element path.
    """
    colour: dict[str, int] = {}
    cycles: list[list[str]] = []

    for node in sorted(graph):
        if colour.get(node, _WHITE) == _WHITE:
            _walk_from(node, graph, colour, cycles)

    return cycles


__all__ = ["find_cycles"]
