import heapq
from collections import defaultdict
from typing import Dict, List, Set

from deployer.exceptions import CyclicDependencyError, UnknownDependencyError
from deployer.params import DeploymentPlan, DeploymentUnit


def _check_dependencies(plan: DeploymentPlan) -> None:
    for name in sorted(plan.names):
        for dependency in sorted(plan[name].dependencies):
            if dependency not in plan:
                raise UnknownDependencyError(unit_name=name, dependency=dependency)


def _find_cycle_members(remaining: Dict[str, Set[str]]) -> Set[str]:
    """
    Units among `remaining` that lie on a cycle, as opposed to units that are merely
    blocked by one. A unit is on a cycle if it can reach itself.
    """
    members = set()
    for start in remaining:
        stack = list(remaining[start])
        seen = set()
        while stack:
            current = stack.pop()
            if current == start:
                members.add(start)
                break
            if current in seen or current not in remaining:
                continue
            seen.add(current)
            stack.extend(remaining[current])
    return members


def sequence(plan: DeploymentPlan) -> List[DeploymentUnit]:
    """
    Orders the units of a plan so every unit comes strictly after all of its
    dependencies. Units that are ready at the same time are taken in ascending
    name order, so the result is the same on every run.
    """
    _check_dependencies(plan)

    in_degree = {name: len(plan[name].dependencies) for name in plan.names}
    dependents = defaultdict(list)
    for name in plan.names:
        for dependency in plan[name].dependencies:
            dependents[dependency].append(name)

    ready = [name for name, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    ordered = list()
    while ready:
        name = heapq.heappop(ready)
        ordered.append(plan[name])
        for dependent in dependents[name]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(ordered) != len(plan):
        remaining = {
            name: set(plan[name].dependencies) for name, degree in in_degree.items() if degree
        }
        raise CyclicDependencyError(units=_find_cycle_members(remaining) or remaining)

    return ordered
