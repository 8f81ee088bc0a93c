"""Full-stack architecture analysis run.

Sends the analysis prompt plus the selected workspace files to a chat model,
materialises the streamed answer, extracts the JSON payload and stores it in
the analysis cache.  A still-valid cache entry short-circuits the model call
unless ``force=True``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, NamedTuple

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessageChunk, BaseMessage, HumanMessage

from planview.analysis.cache import DEFAULT_KEY, DEFAULT_TTL_SECONDS, AnalysisCacheStore
from planview.core.logging import get_logger
from planview.parsing.analysis_payload import AnalysisNotFound, AnalysisOk, AnalysisResult, extract_analysis
from planview.tools.filesystem import read_text

logger = get_logger("agents.analysis")

MAX_CONTEXT_CHARS_PER_FILE = 20_000

FULL_STACK_ANALYSIS_PROMPT = """\
You are a full-stack project analysis expert familiar with frontend/backend \
architecture and visualization design.

The project files are attached below. Analyze them and answer with the \
following JSON structure inside a ```json block, followed by a plain text \
project description:

{
  "project_name": "",          // from package.json, pyproject.toml or similar
  "description": "",           // summarised from README or comments
  "tech_stack": {
    "frontend": [],            // e.g. React, Vite, Tailwind
    "backend": [],             // e.g. Flask, Express, SQLite
    "other": []                // e.g. Docker, Redis, CI/CD
  },
  "structure": {
    "frontend": [
      {
        "file": "",
        "description": "",
        "dependencies": [],
        "methods": [{"name": "", "line": 0, "description": ""}],
        "connects_to": []      // other components, by file name
      }
    ],
    "backend": [
      {
        "file": "",
        "description": "",
        "routes": [{"method": "", "path": "", "description": "", "line": 0}],
        "methods": [{"name": "", "line": 0, "description": ""}],
        "connects_to": [],     // frontend components calling this module
        "database_models": []
      }
    ],
    "database": [
      {"model": "", "fields": [], "description": "", "file": "", "used_by": []}
    ]
  },
  "connections": [
    {
      "from": "",              // source file name
      "to": "",                // target file name
      "type": "",              // "api_call", "import", "data_flow" or "route"
      "description": "",
      "method": ""             // method or route, if applicable
    }
  ],
  "recommendations": []        // which modules deserve a flowchart or component diagram
}

Requirements:
- Output the JSON block first, then the plain text description.
- Analyze import statements, API calls and data flow to fill "connects_to" and "connections".
- Give line numbers for methods and routes where they can be determined.
- Name concrete connection types between frontend, backend and database.
"""


class ContextItem(NamedTuple):
    name: str
    content: str


def gather_context(
    root: str | Path,
    paths: Iterable[str],
    max_chars: int = MAX_CONTEXT_CHARS_PER_FILE,
) -> list[ContextItem]:
    """Read workspace files for the prompt.  Unreadable files are skipped."""
    items: list[ContextItem] = []
    for path in paths:
        try:
            content = read_text(root, path)
        except (OSError, UnicodeError) as exc:
            logger.warning("analysis context: skipping %s: %s", path, exc)
            continue
        if len(content) > max_chars:
            content = content[:max_chars] + f"\n... [truncated {len(content) - max_chars} chars]"
        items.append(ContextItem(name=path, content=content))
    return items


def build_messages(context_items: Iterable[ContextItem]) -> list[BaseMessage]:
    parts: list[dict] = [{"type": "text", "text": FULL_STACK_ANALYSIS_PROMPT}]
    for item in context_items:
        parts.append({"type": "text", "text": f"```{item.name}\n{item.content}\n```"})
    return [HumanMessage(content=parts)]


def _content_text(content: str | list) -> str:
    if isinstance(content, str):
        return content
    text = ""
    for part in content:
        if isinstance(part, dict) and part.get("type") == "text":
            text += part.get("text", "")
        elif isinstance(part, str):
            text += part
    return text


def stream_text(llm: BaseChatModel, messages: list[BaseMessage]) -> str:
    """Stream *llm* and return the complete response text.

    Falls back to ``.invoke()`` if the model cannot stream or streaming fails.
    """
    chunks: list[str] = []
    try:
        for chunk in llm.stream(messages):
            if isinstance(chunk, AIMessageChunk):
                chunks.append(_content_text(chunk.content))
        return "".join(chunks)
    except NotImplementedError:
        logger.debug("streaming_fallback | model does not support .stream()")
    except Exception as exc:
        logger.warning("streaming_error | %s, falling back to .invoke()", exc)
    return _content_text(llm.invoke(messages).content)


def run_analysis(
    get_llm: Callable[[], BaseChatModel],
    context_items: Iterable[ContextItem],
    cache: AnalysisCacheStore,
    key: str = DEFAULT_KEY,
    ttl: float = DEFAULT_TTL_SECONDS,
    force: bool = False,
) -> AnalysisResult:
    """Analyse the given files, or serve the cached analysis while it is valid.

    *get_llm* is only called when the model is actually needed, so a cache
    hit works without provider credentials.  Only ``AnalysisOk`` results are
    cached; the caller shows ``raw`` for the other outcomes.  Raises
    ``ValueError`` when there is nothing to analyse.
    """
    if not force and cache.is_valid(key, ttl):
        cached = cache.get(key)
        if cached is not None:
            logger.info("analysis: cache HIT for key=%s (age %.0fs)", key, cache.age(key))
            return AnalysisOk(payload=cached.payload, raw=cached.raw_text)

    items = list(context_items)
    if not items:
        raise ValueError("No workspace files to analyse")

    logger.info("analysis: running over %d file(s) for key=%s", len(items), key)
    text = stream_text(get_llm(), build_messages(items)).strip()
    if not text:
        logger.warning("analysis: model returned an empty response")
        return AnalysisNotFound(raw="")

    result = extract_analysis(text)
    if isinstance(result, AnalysisOk):
        cache.set(key, result.payload, text)
    else:
        logger.info("analysis: no usable payload (%s), result not cached", result.kind)
    return result
