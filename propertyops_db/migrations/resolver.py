"""
Dependency resolution for migration plans.

Edges come from each step's explicit `depends_on` plus foreign keys: a step
whose DDL says `REFERENCES users` depends on whichever step of the same plan
creates `users`. Ordering is Kahn's algorithm where, among the steps that are
ready, the one declared first always goes next, so a plan without edges runs
exactly in declaration order.
"""

from dataclasses import dataclass
from typing import Dict, List, Set
import heapq
import logging

from .exceptions import DependencyCycle
from .plan import MigrationPlan, Step
from .steps import CreateTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionUnit:
    """One transactional scope: a single step, or every member of an atomic group."""

    name: str
    steps: List[Step]
    is_group: bool = False

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]


def _kahn(nodes: List[str], deps: Dict[str, Set[str]]) -> List[str]:
    """Topological order of `nodes` (declaration order breaks ties); raises on cycles."""
    position = {node: index for index, node in enumerate(nodes)}
    remaining = {node: set(deps.get(node, set())) & set(nodes) for node in nodes}
    dependents: Dict[str, Set[str]] = {node: set() for node in nodes}
    for node, node_deps in remaining.items():
        for dep in node_deps:
            dependents[dep].add(node)

    ready = [position[node] for node in nodes if not remaining[node]]
    heapq.heapify(ready)
    order = []
    while ready:
        node = nodes[heapq.heappop(ready)]
        order.append(node)
        for dependent in dependents[node]:
            remaining[dependent].discard(node)
            if not remaining[dependent]:
                heapq.heappush(ready, position[dependent])

    if len(order) != len(nodes):
        stuck = {node for node in nodes if node not in order}
        raise DependencyCycle(_cycle_members(stuck, remaining, nodes))
    return order


def _cycle_members(stuck: Set[str], remaining: Dict[str, Set[str]], nodes: List[str]) -> List[str]:
    """Drop stuck nodes that merely wait on a cycle, keeping the ones on it."""
    stuck = set(stuck)
    changed = True
    while changed:
        changed = False
        for node in list(stuck):
            has_dependent = any(node in remaining[other] for other in stuck if other != node)
            if not has_dependent:
                stuck.discard(node)
                changed = True
    return [node for node in nodes if node in stuck]


class DependencyResolver:
    """Turns a plan into an ordered list of execution units."""

    def step_dependencies(self, plan: MigrationPlan) -> Dict[str, Set[str]]:
        creators = {step.table: step.name for step in plan.steps if isinstance(step, CreateTable)}
        deps: Dict[str, Set[str]] = {}
        for step in plan.steps:
            edges = set(step.depends_on)
            for table_name in step.referenced_tables():
                creator = creators.get(table_name)
                if creator and creator != step.name:
                    edges.add(creator)
            deps[step.name] = edges
        return deps

    def resolve(self, plan: MigrationPlan) -> List[ExecutionUnit]:
        plan.check()
        deps = self.step_dependencies(plan)
        names = plan.step_names

        # Step-level cycles first, so the error names steps rather than groups
        _kahn(names, deps)

        group_of = plan.group_of()
        unit_of = {name: group_of.get(name, name) for name in names}
        unit_names: List[str] = []
        for name in names:
            if unit_of[name] not in unit_names:
                unit_names.append(unit_of[name])

        unit_deps: Dict[str, Set[str]] = {unit: set() for unit in unit_names}
        for name in names:
            for dep in deps[name]:
                if unit_of[dep] != unit_of[name]:
                    unit_deps[unit_of[name]].add(unit_of[dep])

        try:
            unit_order = _kahn(unit_names, unit_deps)
        except DependencyCycle as cycle:
            # Two groups waiting on each other: report the member steps involved
            members = [name for name in names if unit_of[name] in cycle.steps]
            raise DependencyCycle(members) from cycle

        groups = {group.name: group for group in plan.groups}
        units = []
        for unit in unit_order:
            if unit in groups:
                members = [name for name in names if unit_of[name] == unit]
                ordered = _kahn(members, deps)
                units.append(ExecutionUnit(unit, [plan.step(name) for name in ordered], is_group=True))
            else:
                units.append(ExecutionUnit(unit, [plan.step(unit)]))

        logger.info(f"Resolved execution order: {[u.step_names for u in units]}")
        return units
