"""File categorisation into the six fixed architecture categories.

``categorize(path, content=None)`` is total: every input, including ``""``,
maps to exactly one of ``CATEGORIES``.  Rules, first match wins:

1. path segment rules (``/frontend/``, ``/server/``, ``/db/`` ...)
2. file extension rules
3. content heuristics, only for extensions the table does not know
4. ``config``
"""

from __future__ import annotations

from typing import Literal

Category = Literal["frontend", "backend", "database", "config", "docs", "assets"]

CATEGORIES: tuple[Category, ...] = ("frontend", "backend", "database", "config", "docs", "assets")

DEFAULT_CATEGORY: Category = "config"

_PATH_RULES: tuple[tuple[Category, tuple[str, ...]], ...] = (
    ("frontend", ("/frontend/", "/client/", "/gui/")),
    ("backend", ("/backend/", "/server/", "/core/")),
    ("database", ("/database/", "/db/")),
    ("docs", ("/docs/",)),
    ("assets", ("/assets/", "/public/")),
)

_EXTENSION_RULES: dict[str, Category] = {
    "tsx": "frontend", "jsx": "frontend", "vue": "frontend", "html": "frontend",
    "css": "frontend", "scss": "frontend",
    "py": "backend", "java": "backend", "go": "backend", "rs": "backend",
    "cpp": "backend", "c": "backend", "ts": "backend",
    "sql": "database", "db": "database",
    "md": "docs", "txt": "docs", "rst": "docs",
    "png": "assets", "jpg": "assets", "jpeg": "assets", "svg": "assets", "ico": "assets",
}

# Lower-case tokens that identify a framework or storage layer.
_CONTENT_RULES: tuple[tuple[Category, tuple[str, ...]], ...] = (
    ("database", ("create table", "mongoose.schema", "sequelize.define", "knex.schema", "@prisma/client")),
    ("backend", ("require('express')", 'require("express")', "from 'express'", 'from "express"',
                 "app.listen(", "http.createserver", "from fastapi", "from flask", "require('koa')")),
    ("frontend", ("from 'react'", 'from "react"', "reactdom", "from 'vue'", 'from "vue"',
                  "@angular/core", "document.getelementbyid", "<template>")),
)


def _extension(path: str) -> str:
    filename = path.rsplit("/", 1)[-1]
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def categorize(path: str, content: str | None = None) -> Category:
    """Return the architecture category of the file at *path*."""
    normalized = "/" + (path or "").replace("\\", "/").lstrip("/").lower()

    for category, fragments in _PATH_RULES:
        if any(fragment in normalized for fragment in fragments):
            return category

    ext = _extension(normalized)
    if ext in _EXTENSION_RULES:
        return _EXTENSION_RULES[ext]

    if content:
        lowered = content.lower()
        for category, tokens in _CONTENT_RULES:
            if any(token in lowered for token in tokens):
                return category

    return DEFAULT_CATEGORY


_NAMED_FILES = {
    "package.json": "NPM package config",
    "README.md": "Project documentation",
    "tsconfig.json": "TypeScript config",
}

_EXTENSION_DESCRIPTIONS = {
    "tsx": "React TypeScript component",
    "jsx": "React JavaScript component",
    "ts": "TypeScript file",
    "js": "JavaScript file",
    "py": "Python script",
    "java": "Java class file",
    "html": "HTML template",
    "css": "Stylesheet",
    "scss": "Sass stylesheet",
    "json": "JSON config",
    "md": "Markdown documentation",
    "yml": "YAML config",
    "yaml": "YAML config",
}


def describe_file(filename: str) -> str:
    """Short static description of a file, derived from its name only."""
    if filename in _NAMED_FILES:
        return _NAMED_FILES[filename]
    if "docker" in filename.lower():
        return "Docker config"
    if "test" in filename or "spec" in filename:
        return "Test file"
    ext = _extension(filename)
    if ext in _EXTENSION_DESCRIPTIONS:
        return _EXTENSION_DESCRIPTIONS[ext]
    return ext.upper() or "File"
