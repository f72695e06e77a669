"""
Tests for the cms-globals tool and per-site localizations.
"""

import pytest

TOOL = "cms-globals"


class TestGet:
    def test_default_values(self, call):
        result = call(TOOL, "get", handle="settings")
        assert result["global"] == {
            "handle": "settings",
            "title": "Settings",
            "site": None,
            "values": {"tagline": "Hello", "phone": "555-0100"},
        }

    def test_localized_values_fall_back(self, call):
        values = call(TOOL, "get", handle="settings", site="fr")["global"]["values"]
        assert values == {"tagline": "Bonjour", "phone": "555-0100"}

    def test_site_without_localization(self, call):
        values = call(TOOL, "get", handle="settings", site="de")["global"]["values"]
        assert values["tagline"] == "Hello"

    def test_list(self, call):
        result = call(TOOL, "list")
        assert result["globals"] == [{"handle": "settings", "title": "Settings"}]


class TestUpdate:
    """Updates write default values or a site localization."""

    def test_update_defaults(self, call):
        result = call(TOOL, "update", handle="settings", values={"tagline": "Hi"})
        assert result["global"]["values"] == {"tagline": "Hi", "phone": "555-0100"}
        assert result["updated_keys"] == ["tagline"]
        assert result["cleared_types"] == ["primary-index", "rendered-static"]

    def test_replace_defaults(self, call):
        result = call(TOOL, "update", handle="settings", values={"tagline": "Hi"}, merge=False)
        assert result["global"]["values"] == {"tagline": "Hi"}

    def test_update_localization(self, call, store):
        result = call(TOOL, "update", handle="settings", site="fr", values={"phone": "01 23"})
        assert result["global"]["values"] == {"tagline": "Bonjour", "phone": "01 23"}
        stored = store.repository("globals").find("settings").data
        assert stored["values"]["phone"] == "555-0100"
        assert stored["localizations"]["fr"] == {"tagline": "Bonjour", "phone": "01 23"}

    @pytest.mark.parametrize("values", [None, "tagline=Hi"])
    def test_values_must_be_object(self, call, values):
        result = call(TOOL, "update", handle="settings", values=values)
        assert "values" in result["error"]

    def test_update_missing(self, call):
        assert call(TOOL, "update", handle="footer", values={"a": 1})["error_code"] == "NOT_FOUND"


class TestCreateAndDelete:
    def test_create(self, call):
        result = call(TOOL, "create", handle="Footer", title="Footer", values={"copyright": "ACME"})
        assert result["global"]["handle"] == "footer"
        assert result["global"]["values"] == {"copyright": "ACME"}
        assert result["global"]["localizations"] == {}

    def test_delete(self, call):
        assert call(TOOL, "delete", handle="settings", confirm=True)["deleted"] is True
        assert call(TOOL, "get", handle="settings")["error_code"] == "NOT_FOUND"
