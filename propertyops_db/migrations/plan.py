"""
Migration plans: the steps of one run plus the atomic groups among them.

A plan can be built in Python or loaded from a JSON file:

    {
      "steps": [
        {"kind": "create_table", "name": "create_properties", "table": "properties",
         "columns": ["id SERIAL PRIMARY KEY", "name TEXT NOT NULL", "ical_url TEXT"]},
        {"kind": "add_column", "name": "add_properties_notes", "table": "properties",
         "column": "notes", "type": "TEXT", "depends_on": ["create_properties"]}
      ],
      "groups": [{"name": "properties", "steps": ["create_properties", "add_properties_notes"]}]
    }
"""

from pathlib import Path
from typing import Annotated, Dict, List, Optional, Union
import json
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import InvalidPlan
from .steps import AddColumn, CreateTable, SeedRow

logger = logging.getLogger(__name__)

Step = Annotated[Union[CreateTable, AddColumn, SeedRow], Field(discriminator="kind")]


class AtomicGroup(BaseModel):
    """Steps that commit or roll back together, in one transaction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    steps: List[str]


class MigrationPlan(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    steps: List[Step] = Field(default_factory=list)
    groups: List[AtomicGroup] = Field(default_factory=list)

    def step(self, name: str) -> Step:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def group_of(self) -> Dict[str, str]:
        """Step name -> name of the atomic group it belongs to."""
        return {member: group.name for group in self.groups for member in group.steps}

    def check(self) -> None:
        """Raise InvalidPlan unless names are unique and every reference resolves."""
        seen = set()
        for name in self.step_names:
            if name in seen:
                raise InvalidPlan(f"Duplicate step name: {name}")
            seen.add(name)

        for step in self.steps:
            unknown = sorted(step.depends_on - seen)
            if unknown:
                raise InvalidPlan(f"Step {step.name} depends on unknown steps: {', '.join(unknown)}")

        grouped: Dict[str, str] = {}
        group_names = set()
        for group in self.groups:
            if group.name in group_names:
                raise InvalidPlan(f"Duplicate group name: {group.name}")
            group_names.add(group.name)
            if group.name in seen:
                raise InvalidPlan(f"Group {group.name} has the same name as a step")
            if not group.steps:
                raise InvalidPlan(f"Group {group.name} has no steps")
            for member in group.steps:
                if member not in seen:
                    raise InvalidPlan(f"Group {group.name} names unknown step {member}")
                if member in grouped:
                    raise InvalidPlan(f"Step {member} is in both group {grouped[member]} and group {group.name}")
                grouped[member] = group.name


def load_plan(path: Union[str, Path]) -> MigrationPlan:
    """Load and validate a JSON plan file."""
    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidPlan(f"Could not read plan file {path}: {e}") from e

    try:
        plan = MigrationPlan.model_validate(data)
    except ValidationError as e:
        raise InvalidPlan(f"Plan file {path} is not valid:\n{e}") from e

    plan.check()
    logger.info(f"Loaded plan {path} with {len(plan.steps)} steps and {len(plan.groups)} groups")
    return plan


def build_plan(steps: List[BaseModel], groups: Optional[List[AtomicGroup]] = None) -> MigrationPlan:
    """Assemble and check a plan from step objects."""
    plan = MigrationPlan(steps=list(steps), groups=list(groups or []))
    plan.check()
    return plan
