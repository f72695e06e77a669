"""
Property-based tests for argument validation and sanitisation.

Tests that arbitrary inputs don't crash validation and that every failure
is reported as one aggregated envelope.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from cms_mcp.core.observability import REDACTION_MARKER, sanitize_arguments
from cms_mcp.core.schema import SchemaBuilder, param
from cms_mcp.core.validation import validate_arguments

SCHEMA = (
    SchemaBuilder()
    .string("handle", "Handle", required=True)
    .string("status", "Status", enum=["published", "draft"])
    .integer("limit", "Limit", default=50, minimum=1, maximum=100)
    .boolean("dry_run", "Preview", default=False)
    .array("tags", "Tags", items="string")
    .parameter(
        "author",
        param(
            "object",
            "Author",
            properties={"email": param("string", "Email")},
            required_properties=["email"],
        ),
    )
    .build()
)

json_scalars = st.one_of(
    st.none(), st.booleans(), st.integers(), st.floats(allow_nan=False), st.text(max_size=20)
)
json_values = st.recursive(
    json_scalars,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(st.text(max_size=8), children, max_size=4),
    ),
    max_leaves=12,
)
raw_arguments = st.dictionaries(
    st.sampled_from(["handle", "status", "limit", "dry_run", "tags", "author", "extra"]),
    json_values,
    max_size=7,
)


class TestValidateArguments:
    @given(raw=raw_arguments)
    @settings(max_examples=300)
    def test_never_raises_and_aggregates(self, raw):
        result = validate_arguments(SCHEMA, raw)
        if result.ok:
            assert set(result.arguments) <= set(SCHEMA.properties)
            assert isinstance(result.arguments["handle"], str)
            assert result.arguments["handle"].strip()
            assert 1 <= result.arguments["limit"] <= 100
        else:
            envelope = result.to_response().to_dict()
            assert envelope["error_type"] == "validation"
            assert envelope["error_code"] in ("MISSING_REQUIRED", "VALIDATION_ERROR")
            assert len(envelope["details"]["violations"]) == len(result.violations)

    @given(raw=raw_arguments)
    def test_defaults_fill_absent_optionals(self, raw):
        raw = {**raw, "handle": "blog"}
        raw.pop("limit", None)
        raw.pop("dry_run", None)
        result = validate_arguments(SCHEMA, raw)
        assert "limit" not in result.fields
        if result.ok:
            assert result.arguments["limit"] == 50
            assert result.arguments["dry_run"] is False

    @given(value=st.one_of(st.none(), st.text(alphabet=" \t\n", max_size=5)))
    def test_blank_required_is_missing(self, value):
        result = validate_arguments(SCHEMA, {"handle": value})
        assert result.missing_fields == ["handle"]
        assert result.message.startswith("Missing required fields: handle")

    @given(raw=st.one_of(st.lists(st.integers()), st.text(), st.integers()))
    def test_non_mapping_input(self, raw):
        result = validate_arguments(SCHEMA, raw)
        assert not result.ok
        assert result.fields == ["arguments"]


class TestSanitizeProperties:
    @given(
        secret=st.text(min_size=1, max_size=30),
        key=st.sampled_from(["password", "api_key", "AccessToken", "client_secret"]),
    )
    def test_sensitive_keys_are_redacted_at_any_depth(self, secret, key):
        data = {"outer": [{"inner": {key: secret}}]}
        assert sanitize_arguments(data)["outer"][0]["inner"][key] == REDACTION_MARKER

    @given(data=json_values)
    def test_never_raises(self, data):
        sanitize_arguments(data)
