"""
Tests for the cms-forms tool.
"""

TOOL = "cms-forms"


class TestForms:
    def test_list(self, call):
        assert call(TOOL, "list")["forms"] == [{"handle": "contact", "title": "Contact", "store": True}]

    def test_get(self, call):
        assert call(TOOL, "get", handle="contact")["form"]["store"] is True

    def test_create_derives_title(self, call):
        result = call(TOOL, "create", handle="newsletter_signup")
        assert result["form"]["title"] == "Newsletter Signup"
        assert result["created"] is True

    def test_create_with_email(self, call):
        email = [{"to": "team@example.com", "subject": "New submission"}]
        result = call(TOOL, "create", handle="quote", title="Quote", email=email, honeypot="fax")
        assert result["form"]["email"] == email
        assert result["form"]["honeypot"] == "fax"

    def test_email_needs_recipient(self, call):
        result = call(TOOL, "create", handle="quote", email=[{"subject": "Hi"}])
        assert result["error"] == "Missing required fields: email[0].to"

    def test_update(self, call):
        result = call(TOOL, "update", handle="contact", store=False)
        assert result["form"]["store"] is False
        assert result["updated_fields"] == ["store"]

    def test_delete_requires_confirmation(self, call):
        assert call(TOOL, "delete", handle="contact")["error_code"] == "CONFIRMATION_REQUIRED"
        assert call(TOOL, "delete", handle="contact", confirm=True)["deleted"] is True
