"""Persistence for sprints, tasks, spillovers and insights."""

from .repository import SprintRepository
from .sql_store import SqlSprintStore

__all__ = ["SprintRepository", "SqlSprintStore"]
