# =============================================================================
# pos_core/services/user_service.py
# User Administration Service - Staff management over the local directory
# =============================================================================

from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import pandas as pd

from pos_core.errors import ValidationError
from pos_core.offline.local_store import LocalStore
from pos_core.offline.models import Role, User

from .base_service import BaseService, ServiceResult, SessionProvider


EXPORT_COLUMNS = [
    "id", "name", "email", "role", "phone", "is_active",
    "last_login_at", "created_at", "updated_at",
]
EXPORT_FORMATS = ("json", "csv")
ADMIN_ROLES = (Role.MANAGER, Role.SUPER_ADMIN)


class UserAdminService(BaseService):
    """
    Service for staff administration on the terminal.

    Reads work for any signed-in user; activating, deactivating and
    exporting require a manager or super admin. Deleting a user is modelled
    as deactivation so the next sync can restore it if the remote disagrees.

    Usage:
        service = UserAdminService(store, lambda: broker.current_session)

        result = service.list_users(active_only=True)
        if result.success:
            for user in result.data:
                print(user.name)

        result = service.export_users(fmt="csv", path="staff.csv")
    """

    def __init__(self, store: LocalStore, session_provider: SessionProvider):
        super().__init__(session_provider)
        self.store = store

    # =========================================================================
    # READS
    # =========================================================================

    def list_users(self, active_only: bool = False) -> ServiceResult:
        """List local users, newest first."""
        def _list() -> List[User]:
            self.acting_user()
            users = self.store.get_all()
            if active_only:
                users = [user for user in users if user.is_active]
            return users

        return self.safe_execute("Listing users", _list)

    def search(self, term: str) -> ServiceResult:
        """Match name, email or phone."""
        def _search() -> List[User]:
            self.acting_user()
            return self.store.search(term)

        return self.safe_execute(f"Searching users for '{term}'", _search)

    def get_stats(self) -> ServiceResult:
        def _stats():
            self.acting_user()
            return self.store.get_stats()

        return self.safe_execute("Collecting user stats", _stats)

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def set_active(self, user_id: str, active: bool) -> ServiceResult:
        """
        Activate or deactivate a user.

        A user may not deactivate their own account.
        """
        def _set_active() -> User:
            actor = self.require_role("change user status", *ADMIN_ROLES)
            if actor.id == user_id and not active:
                raise ValidationError("You cannot deactivate your own account", field="user_id")

            user = self.store.set_active(user_id, active)
            if user is None:
                raise ValidationError(f"User {user_id} not found", field="user_id")
            return user

        return self.safe_execute(f"{'Activating' if active else 'Deactivating'} user {user_id}", _set_active)

    def deactivate(self, user_id: str) -> ServiceResult:
        return self.set_active(user_id, False)

    # =========================================================================
    # EXPORT
    # =========================================================================

    def users_frame(self, active_only: bool = False) -> pd.DataFrame:
        """Local users as a DataFrame without credential secrets."""
        users = self.store.get_all()
        if active_only:
            users = [user for user in users if user.is_active]

        frame = pd.DataFrame([user.to_public_dict() for user in users], columns=EXPORT_COLUMNS)
        return frame.replace({np.nan: None})

    def export_users(
        self,
        fmt: str = "json",
        path: Optional[Union[str, Path]] = None,
        active_only: bool = False,
    ) -> ServiceResult:
        """
        Export the staff list as JSON records or CSV.

        Args:
            fmt: "json" or "csv"
            path: Write to this file; return the text when None

        Returns:
            ServiceResult whose data is the exported text or the written path
        """
        def _export():
            if fmt not in EXPORT_FORMATS:
                raise ValidationError(f"Unsupported export format: {fmt}", field="fmt")
            self.require_role("export users", *ADMIN_ROLES)

            frame = self.users_frame(active_only=active_only)
            if fmt == "csv":
                text = frame.to_csv(index=False)
            else:
                text = frame.to_json(orient="records", indent=2)

            if path is None:
                return text

            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
            return target

        return self.safe_execute(f"Exporting users as {fmt}", _export)
