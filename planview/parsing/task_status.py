"""Task status parser (``Plan/task.md`` dialect).

A task document looks like::

    **Project Name**: Shop
    **Current Progress**: 2/5

    ### ✅ Setup repository
    **Description**: init repo
    **Related Files**:
    - `src/app.py` main entry point
    - [x] create repo
    - [ ] add CI

Header glyphs map to status: ✅ completed, 🔄 in-progress, 📝 and ❌ pending.
Metadata keys are accepted in English and Chinese.  Lines that match no
shape are ignored; an empty or malformed document yields no tasks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from planview.core.logging import get_logger
from planview.parsing.models import (
    Checkpoint,
    ProjectInfo,
    RelatedFile,
    TaskDocument,
    TaskRecord,
    TaskStatus,
)

logger = get_logger("parsing.task_status")

_STATUS_BY_GLYPH: dict[str, TaskStatus] = {
    "✅": "completed",
    "🔄": "in-progress",
    "📝": "pending",
    "❌": "pending",
}

_HEADER_RE = re.compile(r"^###\s*([✅🔄📝❌])")
_METADATA_RE = re.compile(r"^(?:-\s*)?\*\*([^*]+?)\*\*\s*[:：]\s*(.*)$")
_CHECKBOX_RE = re.compile(r"^-\s*\[([ xX])\]\s*(.*)$")
_FILE_BULLET_RE = re.compile(r"^[-*]\s+`?([^`\s]+)`?\s*(.*)$")
_SUMMARY_SEP_RE = re.compile(r"^[-–—:：]+\s*")
_DIGITS_RE = re.compile(r"(\d+)")

FILES_CHANGED_SUMMARY = "(listed in Files Changed)"

# Metadata key → canonical field name
_KEYS = {
    "project name": "project_name",
    "项目名称": "project_name",
    "project type": "project_type",
    "项目类型": "project_type",
    "current progress": "current_progress",
    "当前进度": "current_progress",
    "total time": "total_time",
    "总时间": "total_time",
    "description": "description",
    "描述": "description",
    "estimated time": "estimated_time",
    "预计时间": "estimated_time",
    "completed time": "completed_time",
    "完成时间": "completed_time",
    "progress": "progress",
    "进度": "progress",
    "related files": "related_files",
    "相关文件": "related_files",
    "files changed": "files_changed",
}


@dataclass
class _TaskDraft:
    id: int
    title: str
    status: TaskStatus
    description: str = ""
    checkpoints: list[Checkpoint] = field(default_factory=list)
    related_files: list[RelatedFile] = field(default_factory=list)
    files_changed: list[str] = field(default_factory=list)
    estimated_time: str | None = None
    completed_time: str | None = None
    progress: int | None = None

    def close(self) -> TaskRecord:
        related = list(self.related_files)
        if not related and self.files_changed:
            related = [RelatedFile(path=p, summary=FILES_CHANGED_SUMMARY) for p in self.files_changed]
        return TaskRecord(
            id=self.id,
            title=self.title,
            description=self.description,
            status=self.status,
            checkpoints=tuple(self.checkpoints),
            related_files=tuple(related),
            estimated_time=self.estimated_time,
            completed_time=self.completed_time,
            progress=self.progress,
        )


def parse_task_document(text: str) -> TaskDocument:
    """Parse a task document into ordered ``TaskRecord`` entries plus project info."""
    tasks: list[TaskRecord] = []
    project: dict[str, str] = {}
    current: _TaskDraft | None = None
    in_related_files = False

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        header = _HEADER_RE.match(line)
        if header:
            if current is not None:
                tasks.append(current.close())
            in_related_files = False
            current = _TaskDraft(
                id=len(tasks) + 1,
                title=re.sub(r"^###\s*", "", line),
                status=_STATUS_BY_GLYPH[header.group(1)],
            )
            continue

        meta = _METADATA_RE.match(line)
        if meta:
            in_related_files = False
            key = _KEYS.get(meta.group(1).strip().lower())
            value = meta.group(2).strip()
            if key == "related_files":
                in_related_files = True
            elif key is not None:
                _apply_metadata(key, value, current, project)
            continue

        if line.startswith("#"):
            in_related_files = False
            continue

        checkbox = _CHECKBOX_RE.match(line)
        if checkbox:
            if current is not None:
                current.checkpoints.append(
                    Checkpoint(name=checkbox.group(2).strip(), completed=checkbox.group(1) in "xX")
                )
            continue

        if in_related_files and current is not None:
            bullet = _FILE_BULLET_RE.match(line)
            if bullet:
                summary = _SUMMARY_SEP_RE.sub("", bullet.group(2).strip())
                current.related_files.append(RelatedFile(path=bullet.group(1), summary=summary))

    if current is not None:
        tasks.append(current.close())

    project_info = None
    if project:
        project_info = ProjectInfo(
            name=project.get("project_name", ""),
            type=project.get("project_type", ""),
            current_progress=project.get("current_progress", ""),
            total_time=project.get("total_time"),
            description=project.get("description", ""),
        )

    logger.debug("task document: %d task(s), project info=%s", len(tasks), bool(project_info))
    return TaskDocument(tasks=tuple(tasks), project=project_info)


def _apply_metadata(key: str, value: str, current: _TaskDraft | None, project: dict[str, str]) -> None:
    if key in ("project_name", "project_type", "current_progress", "total_time"):
        project[key] = value
        return

    if current is None:
        # Before the first task header a description belongs to the project.
        if key == "description":
            project[key] = value
        return

    if key == "description":
        current.description = value
    elif key == "estimated_time":
        current.estimated_time = value
    elif key == "completed_time":
        current.completed_time = value
    elif key == "progress":
        digits = _DIGITS_RE.search(value)
        if digits:
            current.progress = min(100, int(digits.group(1)))
    elif key == "files_changed":
        current.files_changed = [
            part.strip().strip("`") for part in value.split(",") if part.strip().strip("`")
        ]
