"""
Unit tests for log-injection sanitizers.
"""

import pytest

from secudo.utils.logging_security import (
    create_audit_log_entry,
    sanitize_email_for_log,
    sanitize_error_message_for_log,
    sanitize_for_log,
    sanitize_id_for_log,
)


@pytest.mark.unit
class TestSanitizers:
    def test_newlines_removed(self):
        assert sanitize_for_log("Plant\r\nFAKE ENTRY") == "PlantFAKE ENTRY"

    def test_special_characters_stripped(self):
        assert sanitize_for_log("name<script>") == "namescript"

    def test_truncation(self):
        assert sanitize_for_log("a" * 150, max_length=10) == "aaaaaaaaaa..."

    def test_none_and_empty(self):
        assert sanitize_for_log(None) == "null"
        assert sanitize_for_log("%%%") == "[sanitized]"

    def test_ids(self):
        assert sanitize_id_for_log("n-plc_1") == "n-plc_1"
        assert sanitize_id_for_log(None) == "[no_id]"
        assert sanitize_id_for_log("bad\nid") == "badid"

    def test_email_is_masked(self):
        assert sanitize_email_for_log("olivia@example.com") == "o***@example.com"
        assert sanitize_email_for_log("") == "[no_email]"
        assert sanitize_email_for_log("no-at-sign") == "[invalid_email]"

    def test_error_message_redacts_secrets(self):
        cleaned = sanitize_error_message_for_log("login failed password=hunter2")  # pragma: allowlist secret
        assert "hunter2" not in cleaned
        assert "password=[REDACTED]" in cleaned


@pytest.mark.unit
class TestAuditEntry:
    def test_entry_fields(self):
        entry = create_audit_log_entry(
            action="SNAPSHOT_RESTORED",
            user_id="u-1",
            resource_type="project",
            resource_id="p-1",
            additional_context={"snapshot": "s-1"},
        )

        assert entry == "action=SNAPSHOT_RESTORED user=u-1 resource=project:p-1 success=True snapshot=s-1"

    def test_failure_includes_error(self):
        entry = create_audit_log_entry(action="PROJECT_IMPORT", success=False, error_message="boom")

        assert "success=False" in entry
        assert "error=boom" in entry
        assert "resource=unknown_type:[no_id]" in entry
