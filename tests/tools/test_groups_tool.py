"""
Tests for the cms-groups tool.
"""

TOOL = "cms-groups"


class TestGroups:
    def test_get_lists_members(self, call):
        group = call(TOOL, "get", handle="staff")["group"]
        assert group["roles"] == ["editor"]
        assert group["users"] == ["jane@example.com"]

    def test_create(self, call):
        result = call(TOOL, "create", handle="Authors", title="Authors", roles=["editor"])
        assert result["group"]["handle"] == "authors"
        assert result["cleared_types"] == ["primary-index"]
        assert call(TOOL, "get", handle="authors")["group"]["users"] == []

    def test_create_unknown_role(self, call):
        result = call(TOOL, "create", handle="ops", title="Ops", roles=["admin", "editor"])
        assert result["error"] == "Invalid arguments: unknown roles: admin"
        assert result["details"]["unknown_roles"] == ["admin"]

    def test_update_roles(self, call):
        result = call(TOOL, "update", handle="staff", roles=[])
        assert result["group"]["roles"] == []
        assert result["updated_fields"] == ["roles"]

    def test_update_unknown_role(self, call):
        assert call(TOOL, "update", handle="staff", roles=["admin"])["error_code"] == "VALIDATION_ERROR"

    def test_delete_detaches_members(self, call, store):
        result = call(TOOL, "delete", handle="staff", confirm=True)
        assert result["users_updated"] == 1
        assert store.repository("users").find("jane@example.com").data["groups"] == []

    def test_list(self, call):
        assert call(TOOL, "list")["groups"] == [{"handle": "staff", "title": "Staff", "roles": ["editor"]}]
