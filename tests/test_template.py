"""Tests for prompt template interpolation."""

import pytest

from services.content_service.errors import InterpolationError
from services.content_service.execution_context import ExecutionContext
from services.content_service.template import render, variables


class TestRender:
    def test_substitutes_every_placeholder(self):
        context = ExecutionContext({"topic": "Standing desks", "tone": "friendly"})
        result = render("Write about {{topic}} in a {{ tone }} tone. {{topic}}!", context)
        assert result == "Write about Standing desks in a friendly tone. Standing desks!"

    def test_no_placeholder_tokens_remain(self):
        context = ExecutionContext({"a": "1", "b": "2"})
        result = render("{{a}}-{{b}}-{{a}}", context)
        assert "{{" not in result and "}}" not in result

    def test_structured_values_render_as_json(self):
        context = ExecutionContext({"links": [{"url": "https://example.com"}]})
        result = render("Links: {{links}}", context)
        assert '"url": "https://example.com"' in result

    def test_scalars_render_with_str(self):
        assert render("{{word_count}} words", {"word_count": 1500}) == "1500 words"

    def test_missing_variable_names_variable_and_phase(self):
        with pytest.raises(InterpolationError) as exc_info:
            render("About {{topic}} for {{audience}}", {"topic": "x"}, phase_id="intro")
        assert exc_info.value.variable == "audience"
        assert exc_info.value.phase_id == "intro"
        assert "audience" in str(exc_info.value)

    def test_none_value_counts_as_missing(self):
        with pytest.raises(InterpolationError):
            render("{{topic}}", {"topic": None})

    def test_empty_string_is_a_value(self):
        assert render("[{{site_context}}]", {"site_context": ""}) == "[]"

    def test_single_braces_are_left_alone(self):
        assert render('Return {"products": []} for {{topic}}', {"topic": "x"}) == \
            'Return {"products": []} for x'


def test_variables_in_first_appearance_order():
    assert variables("{{b}} {{a}} {{ b }} {{c}}") == ["b", "a", "c"]
