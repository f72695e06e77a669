"""
Tests for the cms-sites tool.
"""

TOOL = "cms-sites"


class TestSites:
    def test_list(self, call):
        assert call(TOOL, "list")["sites"] == [
            {"handle": "default", "name": "Default", "url": "/", "locale": "en_US"}
        ]

    def test_create_defaults_locale(self, call):
        site = call(TOOL, "create", handle="intl", name="International", url="/intl/")["site"]
        assert (site["locale"], site["lang"]) == ("en_US", "en")

    def test_create_derives_lang(self, call):
        site = call(TOOL, "create", handle="fr", name="French", url="/fr/", locale="fr_FR")["site"]
        assert site["lang"] == "fr"

    def test_create_requires_url(self, call):
        result = call(TOOL, "create", handle="fr", name="French")
        assert result["error"] == "Missing required fields: url"

    def test_invalid_direction(self, call):
        result = call(TOOL, "update", handle="default", direction="up")
        assert result["error"] == "Invalid arguments: direction"

    def test_update(self, call):
        result = call(TOOL, "update", handle="default", url="https://example.com/")
        assert result["site"]["url"] == "https://example.com/"
        assert result["cache_cleared"] is True

    def test_last_site_cannot_be_deleted(self, call, store):
        result = call(TOOL, "delete", handle="default", confirm=True)
        assert result["error"] == "Cannot delete 'default': at least one site must remain"
        assert "cache_cleared" not in result
        assert store.repository("sites").find("default") is not None

    def test_delete_extra_site(self, call):
        call(TOOL, "create", handle="fr", name="French", url="/fr/")
        assert call(TOOL, "delete", handle="fr", confirm=True)["deleted"] is True
