"""
Migration orchestrator module.

This module provides the step plans, the orchestrator that runs
migrations and the retention sweeper that reclaims their workspaces.
"""

from .orchestrator import MigrationOrchestrator, MigrationRun
from .plans import STEP_DEFINITIONS, StepDefinition, skip_reason
from .retention import RetentionSweeper, SweepReport, remove_workspace

__all__ = [
    "MigrationOrchestrator",
    "MigrationRun",
    "STEP_DEFINITIONS",
    "StepDefinition",
    "skip_reason",
    "RetentionSweeper",
    "SweepReport",
    "remove_workspace",
]
