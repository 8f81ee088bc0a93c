"""Typed records produced by the plan document parsers.

All records are frozen: a parse pass creates them once and a fresh parse
replaces the whole collection.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NodeKind = Literal["requirement", "task"]
TaskStatus = Literal["pending", "in-progress", "completed"]


# ---------------------------------------------------------------------------
# Requirement dialect
# ---------------------------------------------------------------------------

class PlanNode(BaseModel):
    """One requirement, sub-requirement or task line of a requirement document.

    ``parent_id`` always names a node emitted earlier in the same pass.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    level: int
    parent_id: str | None = None
    kind: NodeKind


# ---------------------------------------------------------------------------
# Task-status dialect
# ---------------------------------------------------------------------------

class Checkpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    completed: bool = False


class RelatedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    summary: str = ""


class TaskRecord(BaseModel):
    """A ``### <glyph> <title>`` block of a task document."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: str = ""
    status: TaskStatus = "pending"
    checkpoints: tuple[Checkpoint, ...] = ()
    related_files: tuple[RelatedFile, ...] = ()
    estimated_time: str | None = None
    completed_time: str | None = None
    progress: int | None = None

    @property
    def checkpoint_progress(self) -> float:
        """Fraction of completed checkpoints (0.0 when there are none)."""
        if not self.checkpoints:
            return 0.0
        done = sum(1 for cp in self.checkpoints if cp.completed)
        return done / len(self.checkpoints)


class ProjectInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    type: str = ""
    current_progress: str = ""
    total_time: str | None = None
    description: str = ""


class TaskDocument(BaseModel):
    """Result of one task-document parse pass."""

    model_config = ConfigDict(frozen=True)

    tasks: tuple[TaskRecord, ...] = Field(default_factory=tuple)
    project: ProjectInfo | None = None

    def by_status(self, status: TaskStatus) -> list[TaskRecord]:
        return [t for t in self.tasks if t.status == status]
