"""Execution of parsed tests.

This module provides the per-test execution engine, the scheduler
running files sequentially or in a bounded worker pool, and the result
records consumed by reporters.
"""

from .engine import TestExecutor
from .results import ExecutionResult, FileReport, RunReport
from .scheduler import Scheduler, select

__all__ = (
    'ExecutionResult',
    'FileReport',
    'RunReport',
    'Scheduler',
    'TestExecutor',
    'select',
)
