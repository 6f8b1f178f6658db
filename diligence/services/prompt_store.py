from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
_catalog_cache: dict[str, Any] | None = None
_catalog_mtime_ns: int | None = None


def load_catalog() -> dict[str, Any]:
    """Prompt catalog, reloaded only when the file changes on disk."""
    global _catalog_cache, _catalog_mtime_ns
    mtime_ns = PROMPTS_PATH.stat().st_mtime_ns
    if _catalog_cache is not None and _catalog_mtime_ns == mtime_ns:
        return _catalog_cache

    payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Prompt catalog must be a JSON object.")
    _catalog_cache = payload
    _catalog_mtime_ns = mtime_ns
    return payload


def _resolve(key: str) -> Any:
    node: Any = load_catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    return node


def get_prompt(key: str) -> str:
    node = _resolve(key)
    if not isinstance(node, str):
        raise TypeError(f"Prompt key must map to a string: {key}")
    return node


SECTION_FIELDS = ("title", "search_query", "synthesis")


def _sections() -> dict[str, Any]:
    sections = _resolve("sections")
    if not isinstance(sections, dict):
        raise TypeError("Prompt key 'sections' must map to an object.")
    return sections


def section_keys() -> list[str]:
    """Section ids in catalog order."""
    return list(_sections())


def section_entry(section_id: str) -> dict[str, str]:
    """String fields of one section entry; title, search_query and synthesis are required."""
    entry = _sections().get(section_id)
    if not isinstance(entry, dict):
        raise KeyError(f"Prompt section not found: {section_id}")
    missing = [name for name in SECTION_FIELDS if not isinstance(entry.get(name), str)]
    if missing:
        raise ValueError(f"Prompt section '{section_id}' is missing: {', '.join(missing)}")
    return {name: value for name, value in entry.items() if isinstance(value, str)}


def render_prompt(key: str, **values: Any) -> str:
    template = Template(get_prompt(key))
    try:
        return template.substitute(**values)
    except KeyError as exc:
        missing = str(exc.args[0])
        raise KeyError(f"Missing template value '{missing}' for prompt '{key}'") from exc


def clear_prompt_cache() -> None:
    global _catalog_cache, _catalog_mtime_ns
    _catalog_cache = None
    _catalog_mtime_ns = None
