from __future__ import annotations

from typing import Optional, Tuple

from gateflow.models import AdminUser
from gateflow.repositories.base import BaseRepository


class AdminUserRepository(BaseRepository):
    """Repository for admin accounts used by session authentication."""
    table = 'admin_users'

    def get_by_id(self, user_id: str) -> Optional[AdminUser]:
        return AdminUser.from_row(self.get_row(user_id))

    def get_for_login(self, email: str) -> Optional[Tuple[AdminUser, str]]:
        row = self._fetchone('SELECT * FROM admin_users WHERE email = ?', (email,))
        if row is None:
            return None
        return AdminUser.from_row(row), row['password_hash']

    def get_by_email(self, email: str) -> Optional[AdminUser]:
        found = self.get_for_login(email)
        return found[0] if found else None

    def create(self, email: str, password_hash: str, created_at: str) -> AdminUser:
        user_id = self.new_id()
        self._insert({'id': user_id, 'email': email, 'password_hash': password_hash, 'created_at': created_at})
        return self.get_by_id(user_id)

    def update_last_login(self, user_id: str, when: str) -> None:
        self._execute('UPDATE admin_users SET last_login = ? WHERE id = ?', (when, user_id))

    def update_password(self, user_id: str, password_hash: str) -> None:
        self._execute('UPDATE admin_users SET password_hash = ? WHERE id = ?', (password_hash, user_id))

    def get_password_hash(self, user_id: str) -> Optional[str]:
        row = self._fetchone('SELECT password_hash FROM admin_users WHERE id = ?', (user_id,))
        return row['password_hash'] if row else None
