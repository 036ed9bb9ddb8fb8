from collections import deque
from typing import Dict, List, Set
import logging


class DependencyGraph:
    """Orders cleaners so every cleaner runs after its prerequisites.

    add_node('vpcs', ['ec2_instances']) means instances are cleaned first.
    """

    def __init__(self):
        self.nodes: Set[str] = set()
        self.prerequisites: Dict[str, List[str]] = {}

    def add_node(self, name: str, prerequisites: List[str]):
        self.nodes.add(name)
        self.prerequisites.setdefault(name, [])
        for prereq in prerequisites:
            self.nodes.add(prereq)
            if prereq not in self.prerequisites[name]:
                self.prerequisites[name].append(prereq)

    def get_execution_order(self) -> List[str]:
        dependents: Dict[str, List[str]] = {node: [] for node in self.nodes}
        pending: Dict[str, int] = {node: 0 for node in self.nodes}
        for node, prereqs in self.prerequisites.items():
            for prereq in prereqs:
                dependents[prereq].append(node)
                pending[node] += 1

        ready = deque(sorted(node for node, count in pending.items() if count == 0))
        order = []
        while ready:
            node = ready.popleft()
            order.append(node)
            released = []
            for dependent in dependents[node]:
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    released.append(dependent)
            ready = deque(sorted(list(ready) + released))

        if len(order) != len(self.nodes):
            remaining = sorted(self.nodes - set(order))
            logging.error(f"Cycle detected between cleaners {remaining}; running them last")
            order.extend(remaining)
        return order
