"""AI architecture-analysis payload: schema and extraction from free text.

The model is asked to answer with a JSON object, usually inside a fenced
```json block followed by prose.  ``extract_analysis`` finds the object,
validates it against ``AnalysisPayload`` and returns a tagged result:

- ``AnalysisOk``: payload decoded and validated
- ``AnalysisMalformed``: a JSON candidate exists but does not decode/validate
- ``AnalysisNotFound``: the text contains no JSON candidate at all

Callers that get anything but ``AnalysisOk`` show ``raw`` as opaque text.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from planview.core.logging import get_logger

logger = get_logger("parsing.analysis_payload")

_FENCED_JSON_RE = re.compile(r"```json[^\n]*\n(.*?)\n\s*```", re.DOTALL)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class _Lenient(BaseModel):
    """Base for payload parts: unknown keys ignored, ``null`` means "use the default"."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class MethodInfo(_Lenient):
    name: str = ""
    line: int | None = None
    description: str = ""

    @field_validator("line", mode="before")
    @classmethod
    def _coerce_line(cls, value: Any) -> int | None:
        try:
            line = int(value)
        except (TypeError, ValueError):
            return None
        return line if line > 0 else None


class RouteInfo(_Lenient):
    method: str = ""
    path: str = ""
    description: str = ""
    line: int | None = None

    @field_validator("line", mode="before")
    @classmethod
    def _coerce_line(cls, value: Any) -> int | None:
        try:
            line = int(value)
        except (TypeError, ValueError):
            return None
        return line if line > 0 else None


class ComponentInfo(_Lenient):
    file: str = ""
    description: str = ""
    dependencies: list[str] = Field(default_factory=list)
    methods: list[MethodInfo] = Field(default_factory=list)
    routes: list[RouteInfo] = Field(default_factory=list)
    connects_to: list[str] = Field(default_factory=list)
    database_models: list[str] = Field(default_factory=list)


class ModelInfo(_Lenient):
    model: str = ""
    field_names: list[str] = Field(default_factory=list, alias="fields")
    description: str = ""
    file: str = ""
    used_by: list[str] = Field(default_factory=list)


class ConnectionInfo(_Lenient):
    source: str = Field(default="", alias="from")
    target: str = Field(default="", alias="to")
    type: str = "import"
    description: str = ""
    method: str | None = None


class TechStack(_Lenient):
    frontend: list[str] = Field(default_factory=list)
    backend: list[str] = Field(default_factory=list)
    other: list[str] = Field(default_factory=list)


class Structure(_Lenient):
    frontend: list[ComponentInfo] = Field(default_factory=list)
    backend: list[ComponentInfo] = Field(default_factory=list)
    database: list[ModelInfo] = Field(default_factory=list)


class AnalysisPayload(_Lenient):
    """Validated architecture analysis of one workspace."""

    project_name: str = ""
    description: str = ""
    tech_stack: TechStack = Field(default_factory=TechStack)
    structure: Structure = Field(default_factory=Structure)
    connections: list[ConnectionInfo] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisPayload":
        return cls.model_validate(data)


# ---------------------------------------------------------------------------
# Tagged extraction result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnalysisOk:
    payload: AnalysisPayload
    raw: str
    kind: Literal["ok"] = "ok"


@dataclass(frozen=True)
class AnalysisMalformed:
    error: str
    raw: str
    kind: Literal["malformed"] = "malformed"


@dataclass(frozen=True)
class AnalysisNotFound:
    raw: str
    kind: Literal["not_found"] = "not_found"


AnalysisResult = Union[AnalysisOk, AnalysisMalformed, AnalysisNotFound]


def extract_analysis(text: str) -> AnalysisResult:
    """Locate, decode and validate the analysis JSON embedded in *text*.

    The fenced ```json block wins; the first balanced top-level ``{...}``
    span is tried when there is no fenced block or the fenced block is broken.
    """
    candidates: list[str] = []
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    span = first_json_object(text)
    if span is not None and span not in candidates:
        candidates.append(span)

    if not candidates:
        logger.debug("analysis: no JSON candidate in %d chars", len(text))
        return AnalysisNotFound(raw=text)

    first_error = ""
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as exc:
            first_error = first_error or f"invalid JSON: {exc}"
            continue
        if not isinstance(data, dict):
            first_error = first_error or f"expected a JSON object, got {type(data).__name__}"
            continue
        try:
            payload = AnalysisPayload.model_validate(data)
        except ValidationError as exc:
            first_error = first_error or f"schema mismatch: {exc.error_count()} error(s)"
            continue
        return AnalysisOk(payload=payload, raw=text)

    logger.info("analysis: malformed payload (%s)", first_error)
    return AnalysisMalformed(error=first_error, raw=text)


def first_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span of *text*, string-literal aware.

    An opening brace that never closes yields the rest of the text so the
    caller reports it as malformed rather than missing.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]
