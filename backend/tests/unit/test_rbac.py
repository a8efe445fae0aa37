"""
Unit tests for project role checks and visibility policies.
"""

from datetime import datetime

import pytest

from secudo.rbac import (
    ProjectRole,
    ProjectVisibility,
    can_edit,
    can_export,
    can_restore,
    can_user_view_project,
    get_project_access,
    normalize_project_role,
    normalize_visibility,
)


@pytest.mark.unit
class TestRoleNormalization:
    def test_legacy_user_role_is_editor(self):
        assert normalize_project_role("user") == ProjectRole.EDITOR
        assert normalize_project_role(" Admin ") == ProjectRole.ADMIN
        assert normalize_project_role("owner") is None
        assert normalize_project_role(None) is None

    def test_visibility_defaults(self):
        assert normalize_visibility("Viewer") == ProjectVisibility.VIEWER
        assert normalize_visibility("nonsense") == ProjectVisibility.PRIVATE
        assert normalize_visibility(42, ProjectVisibility.EDITOR) == ProjectVisibility.EDITOR


@pytest.mark.unit
class TestPermissions:
    def test_edit_requires_editor_or_admin(self):
        assert can_edit("Admin")
        assert can_edit("Editor")
        assert not can_edit("Viewer")
        assert not can_edit(None)

    def test_export_and_restore_allow_global_admin(self):
        assert can_export(None, "Admin")
        assert can_restore(None, "admin")
        assert not can_export("Viewer", "Editor")
        assert not can_restore(None, "Viewer")

    @pytest.mark.parametrize(
        "policy,membership,visible",
        [
            ("any", None, True),
            ("private", None, False),
            ("private", "Viewer", True),
            ("viewer", "Viewer", True),
            ("editor", "Viewer", False),
            ("editor", "Editor", True),
            ("admin", "Editor", False),
            ("admin", "Admin", True),
        ],
    )
    def test_visibility_policy(self, policy, membership, visible):
        assert can_user_view_project(policy, membership) is visible

    def test_global_admin_sees_everything(self):
        assert can_user_view_project("private", None, global_role="Admin")


@pytest.mark.unit
class TestProjectAccess:
    def test_missing_project(self, db_session):
        access = get_project_access(db_session, "nope", {"id": "u", "role": "Admin"})
        assert not access.exists

    def test_creator_is_earliest_member(self, db_session, make_user, make_project):
        first = make_user("first@example.com")
        second = make_user("second@example.com")
        project = make_project(members=[(first, "Admin"), (second, "Viewer")])

        access = get_project_access(db_session, project.id, {"id": second.id, "role": "Viewer"})

        assert access.exists
        assert access.can_view
        assert access.membership_role == "Viewer"
        assert access.creator_user_id == first.id

    def test_trashed_project_hidden_unless_requested(self, db_session, make_user, make_project):
        owner = make_user("owner@example.com")
        project = make_project(members=[(owner, "Admin")], deleted_at=datetime.utcnow())
        caller = {"id": owner.id, "role": "Viewer"}

        assert not get_project_access(db_session, project.id, caller).exists
        assert get_project_access(db_session, project.id, caller, include_deleted=True).exists
