"""
Step plans for each migration type.

Steps are recorded in order as a run reaches them, so step numbers stay
contiguous. Steps a plan or the request's include flags leave out are
recorded as skipped.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from hosting_migrator.models.config import MigrationRequest, MigrationType
from hosting_migrator.models.session import StepType


@dataclass(frozen=True)
class StepDefinition:
    """A stage of the pipeline."""
    step_type: StepType
    name: str
    description: str
    include_flag: Optional[str] = None


STEP_DEFINITIONS: List[StepDefinition] = [
    StepDefinition(StepType.DOWNLOAD, "Acquire Backup", "Fetch the backup into the migration workspace"),
    StepDefinition(StepType.EXTRACT, "Extract Backup", "Unpack the backup archive"),
    StepDefinition(StepType.PARSE, "Parse Account", "Build the account manifest from the backup layout"),
    StepDefinition(StepType.FILES, "Migrate Files", "Copy site files into the destination", "include_files"),
    StepDefinition(StepType.DATABASES, "Migrate Databases", "Create and restore databases", "include_databases"),
    StepDefinition(StepType.EMAILS, "Migrate Email", "Create mailboxes and copy mail", "include_emails"),
    StepDefinition(StepType.DNS, "Migrate DNS", "Create DNS zones", "include_dns"),
    StepDefinition(StepType.FINALIZE, "Finalize", "Aggregate results and write the migration summary"),
    StepDefinition(StepType.CLEANUP, "Cleanup", "Remove the migration workspace"),
]

# step types each migration type leaves out
_PLAN_EXCLUSIONS: Dict[MigrationType, FrozenSet[StepType]] = {
    MigrationType.FULL: frozenset(),
    MigrationType.FILES_ONLY: frozenset({StepType.DATABASES, StepType.EMAILS, StepType.DNS}),
    MigrationType.MANUAL: frozenset({StepType.EMAILS, StepType.DNS}),
}


def has_plan(migration_type: MigrationType) -> bool:
    return migration_type in _PLAN_EXCLUSIONS


def skip_reason(definition: StepDefinition, request: MigrationRequest) -> Optional[str]:
    """Return why ``definition`` does not run for ``request``, or None if it runs."""
    if definition.step_type in _PLAN_EXCLUSIONS[request.migration_type]:
        return f"Not part of a {request.migration_type.value} migration"
    if definition.include_flag and not getattr(request, definition.include_flag):
        return f"Disabled by {definition.include_flag}"
    return None
