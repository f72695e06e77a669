"""
Tests for the cms-templates lint action.
"""

import pytest

TOOL = "cms-templates"


class TestLint:
    """Linting through the tool resolves blueprint fields from the store."""

    def test_clean_template(self, call):
        result = call(TOOL, "lint", template="<h1>{{ title }}</h1><p>{{ summary }}</p>", blueprint="blog")
        assert result["valid"] is True
        assert result["ok"] is True
        assert result["errors"] == []
        assert result["blueprint"] == "blog"
        assert result["context"] == "entry"
        assert result["strict_mode"] is False
        assert result["stats"]["total_tags"] == 2

    def test_unknown_field_is_a_successful_lint(self, call):
        result = call(TOOL, "lint", template="{{ summry }}", blueprint="blog")
        assert "error" not in result
        assert result["valid"] is False
        assert result["errors"][0]["code"] == "unknown_field"
        assert "Did you mean: summary?" in result["errors"][0]["message"]

    def test_inline_fields_extend_blueprint(self, call):
        result = call(TOOL, "lint", template="{{ hero_image }}", blueprint="blog", fields={"hero_image": "assets"})
        assert result["valid"] is True

    def test_inline_fields_without_blueprint(self, call):
        result = call(TOOL, "lint", template="{{ price }}", fields={"price": "integer"})
        assert result["valid"] is True
        assert result["blueprint"] is None

    def test_unknown_blueprint(self, call):
        result = call(TOOL, "lint", template="{{ title }}", blueprint="article")
        assert result["error"] == "Blueprint 'article' not found"
        assert result["error_code"] == "BLUEPRINT_NOT_FOUND"
        assert result["error_type"] == "not_found"
        assert result["details"]["available_blueprints"] == ["blog"]

    def test_strict_mode(self, call):
        result = call(TOOL, "lint", template="{{ published_on }}", blueprint="blog", strict_mode=True)
        assert result["valid"] is True
        assert "missing_date_format" in [w["code"] for w in result["warnings"]]

    @pytest.mark.parametrize("context,valid", [("collection", True), ("entry", False)])
    def test_context(self, call, context, valid):
        assert call(TOOL, "lint", template="{{ count }}", context=context)["valid"] is valid

    def test_invalid_context(self, call):
        result = call(TOOL, "lint", template="{{ title }}", context="email")
        assert result["error"] == "Invalid arguments: context"

    def test_template_required(self, call):
        assert call(TOOL, "lint")["error"] == "Missing required fields: template"

    def test_lint_is_read_only(self, call):
        assert "cache_cleared" not in call(TOOL, "lint", template="{{ title }}")
