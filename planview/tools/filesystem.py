"""Workspace file access, sandboxed to a workspace root.

Every path is resolved and verified to stay inside the root before any I/O.
Provides the directory listing behind the structure graph and the lookup of
plan documents (``Plan/task.md``, ``Plan/re-plan.md``, ...).
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field

from planview.analysis.categorizer import categorize, describe_file
from planview.core.logging import get_logger

logger = get_logger("tools.filesystem")

IGNORED_DIRS = frozenset({"node_modules", ".git", "dist", "build", ".next", "__pycache__"})

TASK_FILES = ("task.md",)
REQUIREMENT_FILES = ("re-plan.md", "re-plan-simple.md")
DEFAULT_PLAN_DIRS = ("Plan", "plan", "PLAN")

# Files larger than this are categorised by path/extension only
_CONTENT_SNIFF_LIMIT = 64 * 1024


class PathEscapeError(Exception):
    """Raised when a path would escape the workspace sandbox."""


class FileEntry(BaseModel):
    name: str
    path: str
    is_dir: bool = False
    category: str | None = None
    description: str = ""
    children: list["FileEntry"] = Field(default_factory=list)


class LookupResult(BaseModel):
    """Outcome of a plan-document lookup.  ``tried`` lists every candidate path."""

    found: bool = False
    path: str | None = None
    content: str = ""
    tried: list[str] = Field(default_factory=list)


def resolve_safe(root: str | Path, relative_path: str) -> Path:
    """Resolve *relative_path* against *root* and verify it stays inside."""
    base = Path(root).resolve()
    if not base.exists():
        raise FileNotFoundError(f"Workspace root does not exist: {base}")
    target = (base / relative_path).resolve()
    try:
        target.relative_to(base)
    except ValueError as exc:
        raise PathEscapeError(
            f"Path escapes workspace sandbox: {relative_path!r} resolved to {target}"
        ) from exc
    return target


def decode_text(raw: bytes) -> str:
    """Decode file bytes, honouring and stripping a UTF-8/16/32 BOM."""
    if raw.startswith(b"\xff\xfe\x00\x00") or raw.startswith(b"\x00\x00\xfe\xff"):
        return raw.decode("utf-32", errors="replace").lstrip("\ufeff")
    if raw.startswith(b"\xff\xfe") or raw.startswith(b"\xfe\xff"):
        return raw.decode("utf-16", errors="replace").lstrip("\ufeff")
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw[3:].decode("utf-8", errors="replace")
    return raw.decode("utf-8", errors="replace")


def read_text(root: str | Path, relative_path: str) -> str:
    """Read a file inside the workspace.  Raises ``FileNotFoundError`` for non-files."""
    target = resolve_safe(root, relative_path)
    if not target.is_file():
        raise FileNotFoundError(f"Not a file: {relative_path}")
    content = decode_text(target.read_bytes())
    logger.info("read_text  | %s (%d chars)", relative_path, len(content))
    return content


# ---------------------------------------------------------------------------
# Directory listing
# ---------------------------------------------------------------------------

def _skip(entry: Path) -> bool:
    return entry.name.startswith(".") or entry.name in IGNORED_DIRS


def _sniff(path: Path) -> str | None:
    try:
        if path.stat().st_size > _CONTENT_SNIFF_LIMIT:
            return None
        return decode_text(path.read_bytes())
    except OSError as exc:
        logger.debug("scan: cannot read %s: %s", path, exc)
        return None


def scan_workspace(root: str | Path, depth: int = 1) -> list[FileEntry]:
    """List the workspace as a ``FileEntry`` tree.

    Top-level entries are listed with children down to *depth* further levels.
    Directories come first, then files, each alphabetically.  Top-level files
    are categorised using their content as well as their path.
    """
    base = Path(root).resolve()
    if not base.is_dir():
        raise FileNotFoundError(f"Workspace root does not exist: {base}")

    def _walk(directory: Path, level: int) -> list[FileEntry]:
        try:
            children = sorted(directory.iterdir(), key=lambda e: (not e.is_dir(), e.name.lower()))
        except PermissionError:
            logger.warning("scan: permission denied for %s", directory)
            return []
        entries: list[FileEntry] = []
        for child in children:
            if _skip(child):
                continue
            relative = child.relative_to(base).as_posix()
            if child.is_dir():
                entries.append(
                    FileEntry(
                        name=child.name,
                        path=relative,
                        is_dir=True,
                        children=_walk(child, level + 1) if level < depth else [],
                    )
                )
            else:
                content = _sniff(child) if level == 0 else None
                entries.append(
                    FileEntry(
                        name=child.name,
                        path=relative,
                        category=categorize(relative, content),
                        description=describe_file(child.name),
                    )
                )
        return entries

    entries = _walk(base, 0)
    logger.info("scan: %s (%d top-level entries)", base, len(entries))
    return entries


def iter_files(entries: Iterable[FileEntry]) -> Iterable[FileEntry]:
    """Yield every file entry of a listing, depth first."""
    for entry in entries:
        if entry.is_dir:
            yield from iter_files(entry.children)
        else:
            yield entry


# ---------------------------------------------------------------------------
# Plan documents
# ---------------------------------------------------------------------------

def locate_plan_document(
    root: str | Path,
    filenames: Iterable[str],
    plan_dirs: Iterable[str] = DEFAULT_PLAN_DIRS,
) -> LookupResult:
    """Return the first existing ``<plan_dir>/<filename>`` under *root*.

    Filenames are tried in order, each across all plan directories, so
    ``re-plan.md`` in any directory wins over ``re-plan-simple.md``.
    """
    base = Path(root)
    dirs = list(plan_dirs)
    tried: list[str] = []
    for filename in filenames:
        for plan_dir in dirs:
            relative = f"{plan_dir}/{filename}"
            tried.append(relative)
            candidate = base / plan_dir / filename
            if not candidate.is_file():
                continue
            try:
                content = read_text(base, relative)
            except (OSError, PathEscapeError) as exc:
                logger.warning("plan document %s unreadable: %s", relative, exc)
                continue
            logger.info("plan document found: %s", relative)
            return LookupResult(found=True, path=relative, content=content, tried=tried)
    logger.info("plan document not found (tried %s)", ", ".join(tried))
    return LookupResult(found=False, tried=tried)
