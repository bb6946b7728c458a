# =============================================================================
# tests/unit/test_user_service.py
# Unit Tests for UserAdminService
# =============================================================================

import json
from unittest.mock import MagicMock

import pandas as pd
import pytest

from pos_core.offline import Session, SessionSource
from pos_core.services import UserAdminService


@pytest.fixture
def acting_as(store):
    """Build a service acting as the given seeded user (None = signed out)"""
    def _service(user_id):
        session = None
        if user_id:
            session = Session(token="t", user=store.get_by_id(user_id), source=SessionSource.LOCAL)
        return UserAdminService(store, lambda: session)
    return _service


class TestReads:
    """Test listing and searching"""

    def test_list_users(self, acting_as):
        result = acting_as("demo-cashier-1").list_users()

        assert result.success
        assert len(result.data) == 3

    def test_list_active_only(self, acting_as, store):
        store.set_active("demo-manager-1", False)

        result = acting_as("demo-admin-1").list_users(active_only=True)

        assert {u.id for u in result.data} == {"demo-admin-1", "demo-cashier-1"}

    def test_signed_out_is_refused(self, acting_as):
        result = acting_as(None).list_users()

        assert not result
        assert result.error_code == "AUTH_002"
        assert result.category == "credential"

    def test_search(self, acting_as):
        result = acting_as("demo-cashier-1").search("admin")

        assert [u.id for u in result.data] == ["demo-admin-1"]

    def test_stats(self, acting_as):
        assert acting_as("demo-manager-1").get_stats().data["users"] == 3

    def test_unexpected_error_is_folded_into_result(self, acting_as, store):
        store.get_stats = MagicMock(side_effect=RuntimeError("boom"))

        result = acting_as("demo-manager-1").get_stats()

        assert not result
        assert result.error_code == "UNKNOWN"
        assert result.category == "unexpected"
        assert result.error == "Something went wrong. Please try again."


class TestSetActive:
    """Test activation changes"""

    def test_manager_can_deactivate(self, acting_as, store):
        result = acting_as("demo-manager-1").deactivate("demo-cashier-1")

        assert result.success
        assert result.data.is_active is False
        assert store.get_by_id("demo-cashier-1").is_active is False

    def test_cashier_is_denied(self, acting_as, store):
        result = acting_as("demo-cashier-1").set_active("demo-manager-1", False)

        assert not result.success
        assert result.error_code == "AUTH_003"
        assert result.details["required_roles"] == ["manager", "super_admin"]
        assert result.error == "You do not have permission to perform this action."
        assert store.get_by_id("demo-manager-1").is_active is True

    def test_cannot_deactivate_self(self, acting_as):
        result = acting_as("demo-admin-1").deactivate("demo-admin-1")

        assert not result.success
        assert result.error_code == "AUTH_001"
        assert result.category == "validation"
        assert result.error == "You cannot deactivate your own account"

    def test_unknown_user(self, acting_as):
        result = acting_as("demo-admin-1").set_active("missing", True)

        assert not result.success


class TestExport:
    """Test JSON and CSV export"""

    def test_json_export_has_no_secrets(self, acting_as):
        result = acting_as("demo-admin-1").export_users(fmt="json")

        records = json.loads(result.data)
        assert len(records) == 3
        assert all("credential_secret" not in record for record in records)
        assert {record["email"] for record in records} == {
            "admin@techcorp.com", "manager@techcorp.com", "cashier@techcorp.com",
        }

    def test_csv_export_to_file(self, acting_as, tmp_path):
        target = tmp_path / "exports" / "staff.csv"

        result = acting_as("demo-manager-1").export_users(fmt="csv", path=target)

        assert result.data == target
        frame = pd.read_csv(target)
        assert list(frame.columns[:3]) == ["id", "name", "email"]
        assert len(frame) == 3

    def test_unsupported_format(self, acting_as):
        result = acting_as("demo-admin-1").export_users(fmt="xml")

        assert not result.success
        assert result.error_code == "AUTH_001"

    def test_cashier_cannot_export(self, acting_as):
        assert not acting_as("demo-cashier-1").export_users()

    def test_users_frame(self, acting_as, store):
        store.set_active("demo-cashier-1", False)

        frame = acting_as("demo-admin-1").users_frame(active_only=True)

        assert isinstance(frame, pd.DataFrame)
        assert len(frame) == 2
