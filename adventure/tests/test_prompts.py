"""
Tests for prompt templates and placeholder substitution.
"""

import pytest

from adventure.engine.prompt_resolver import PromptResolver, substitute
from adventure.prompts import BUILT_IN_PROMPTS


def test_substitute_known_and_unknown_placeholders():
    template = "Hello {{NAME}}, plan: {{PLOT_PLAN}} {{MISSING}}"
    result = substitute(template, {"NAME": "Hero", "PLOT_PLAN": ""})
    assert result == "Hello Hero, plan:  {{MISSING}}"


def test_every_phase_has_a_built_in_prompt():
    for name in ("history", "memory-fetch", "memory-fetch-result", "narrative", "memory-update", "summary", "critic"):
        assert BUILT_IN_PROMPTS[name].strip()


def test_override_directory_wins(tmp_path):
    (tmp_path / "narrative.txt").write_text("Custom {{AUTHOR_STYLE}}", encoding="utf-8")
    resolver = PromptResolver(str(tmp_path))
    assert resolver.resolve("narrative", {"AUTHOR_STYLE": "terse"}) == "Custom terse"
    assert resolver.load("summary") == BUILT_IN_PROMPTS["summary"]


def test_unknown_template():
    with pytest.raises(KeyError):
        PromptResolver().load("does-not-exist")
