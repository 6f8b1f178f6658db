from __future__ import annotations

import pytest

from diligence.services.prompt_store import (
    clear_prompt_cache,
    get_prompt,
    load_catalog,
    render_prompt,
    section_entry,
    section_keys,
)


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt("sections.company_overview.synthesis", entity="Acme Corp")
    assert "Acme Corp" in prompt
    assert "$entity" not in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="entity"):
        render_prompt("evidence.brief", title="Funding", query="q")


def test_get_prompt_requires_a_string_leaf():
    assert get_prompt("sections.ipo_potential.title") == "IPO Potential"
    with pytest.raises(TypeError):
        get_prompt("sections.ipo_potential")


def test_catalog_is_cached_until_cleared():
    first = load_catalog()
    assert load_catalog() is first

    clear_prompt_cache()
    assert load_catalog() is not first
    assert section_keys()[0] == "company_overview"


def test_section_entry_exposes_string_fields():
    entry = section_entry("recent_news_developments")
    assert entry["title"] == "Recent News & Developments"
    assert entry["time_range"] == "year"
    assert "$entity" in entry["search_query"]

    with pytest.raises(KeyError):
        section_entry("weather")
