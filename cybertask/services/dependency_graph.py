"""
Dependency Graph - keeps a project's task dependencies acyclic.

Architecture Decision: Incremental checking
The graph is acyclic before every insertion, so it is enough to check the one
new edge: `task -> depends_on` closes a cycle exactly when `task` is already
reachable from `depends_on`. That is one depth-first search, O(V+E), bounded
by the project's size. No global re-scan is ever needed.

The graph is a plain in-memory structure. TaskService builds it from the
stored edges of one project (under that project's lock) and persists the
edge only after the graph accepted it.
"""

from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Mapping, Set, Tuple

from cybertask.domain.errors import DomainError

Edge = Tuple[str, str]


class DependencyGraph:
    """
    Directed "depends on" graph over tasks.

    Args:
        task_projects: task id -> project id for every task the graph may see
        edges: existing (task_id, depends_on_id) pairs
    """

    def __init__(self, task_projects: Mapping[str, str], edges: Iterable[Edge] = ()):
        self._task_projects: Dict[str, str] = dict(task_projects)
        self._deps: Dict[str, Set[str]] = defaultdict(set)
        self._dependents: Dict[str, Set[str]] = defaultdict(set)
        for task_id, depends_on_id in edges:
            self._link(task_id, depends_on_id)

    def __contains__(self, edge: Edge) -> bool:
        task_id, depends_on_id = edge
        return depends_on_id in self._deps.get(task_id, ())

    def __len__(self) -> int:
        return sum(len(targets) for targets in self._deps.values())

    def _link(self, task_id: str, depends_on_id: str) -> None:
        self._deps[task_id].add(depends_on_id)
        self._dependents[depends_on_id].add(task_id)

    def _unlink(self, task_id: str, depends_on_id: str) -> None:
        self._deps[task_id].discard(depends_on_id)
        self._dependents[depends_on_id].discard(task_id)

    def add_task(self, task_id: str, project_id: str) -> None:
        self._task_projects[task_id] = project_id

    def project_of(self, task_id: str) -> str:
        try:
            return self._task_projects[task_id]
        except KeyError:
            raise DomainError.not_found("Task", task_id) from None

    def reaches(self, start: str, target: str) -> bool:
        """True if target can be reached from start following "depends on" edges"""
        if start == target:
            return True
        stack = [start]
        visited = {start}
        while stack:
            node = stack.pop()
            for nxt in self._deps.get(node, ()):
                if nxt == target:
                    return True
                if nxt not in visited:
                    visited.add(nxt)
                    stack.append(nxt)
        return False

    def check_edge(self, task_id: str, depends_on_id: str) -> None:
        """Raise the DomainError that adding this edge would cause, if any"""
        if self.project_of(task_id) != self.project_of(depends_on_id):
            raise DomainError.cross_project(task_id, depends_on_id)
        if (task_id, depends_on_id) in self:
            raise DomainError.constraint("Dependency already exists",
                                         task_id=task_id, depends_on_id=depends_on_id)
        # Self-dependency counts as a cycle of length one
        if self.reaches(depends_on_id, task_id):
            raise DomainError.cycle(task_id, depends_on_id)

    def can_add_edge(self, task_id: str, depends_on_id: str) -> bool:
        try:
            self.check_edge(task_id, depends_on_id)
        except DomainError:
            return False
        return True

    def add_edge(self, task_id: str, depends_on_id: str) -> None:
        """Add an edge or raise without touching the graph"""
        self.check_edge(task_id, depends_on_id)
        self._link(task_id, depends_on_id)

    def remove_edge(self, task_id: str, depends_on_id: str) -> None:
        if (task_id, depends_on_id) not in self:
            raise DomainError.not_found("Dependency", f"{task_id}->{depends_on_id}")
        self._unlink(task_id, depends_on_id)

    def remove_task(self, task_id: str) -> List[Edge]:
        """Drop a task and every edge touching it. Returns the removed edges."""
        removed = [(task_id, d) for d in self._deps.pop(task_id, set())]
        removed += [(d, task_id) for d in self._dependents.pop(task_id, set())]
        for src, dst in removed:
            self._deps.get(src, set()).discard(dst)
            self._dependents.get(dst, set()).discard(src)
        self._task_projects.pop(task_id, None)
        return removed

    def dependencies_of(self, task_id: str) -> Set[str]:
        return set(self._deps.get(task_id, ()))

    def dependents_of(self, task_id: str) -> Set[str]:
        return set(self._dependents.get(task_id, ()))

    def edges(self) -> Set[Edge]:
        return {(src, dst) for src, targets in self._deps.items() for dst in targets}

    def is_acyclic(self) -> bool:
        """Full check (iterative three-colour DFS). Used for diagnostics and tests."""
        white, grey, black = 0, 1, 2
        colour: Dict[str, int] = {}
        nodes = set(self._deps) | set(self._dependents)
        for root in nodes:
            if colour.get(root, white) != white:
                continue
            colour[root] = grey
            stack: List[Tuple[str, Iterator[str]]] = [(root, iter(self._deps.get(root, ())))]
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    colour[node] = black
                    stack.pop()
                    continue
                state = colour.get(child, white)
                if state == grey:
                    return False
                if state == white:
                    colour[child] = grey
                    stack.append((child, iter(self._deps.get(child, ()))))
        return True
