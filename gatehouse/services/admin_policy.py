"""
gatehouse.services.admin_policy — Who counts as an admin
=========================================================

The OAuth callback asks the policy once per login and bakes the answer
into the JWT (``is_admin``).  Admin status is not re-checked per request.
"""

from __future__ import annotations

from typing import Protocol

from gatehouse.config import GatehouseConfig


class AdminPolicy(Protocol):
    def is_admin(self, user_id: int) -> bool: ...


class AllowListAdminPolicy:
    """Admins are the Discord user ids listed under ``admin_ids``."""

    def __init__(self, admin_ids) -> None:
        self.admin_ids = frozenset(int(i) for i in admin_ids)

    @classmethod
    def from_config(cls, cfg: GatehouseConfig) -> AllowListAdminPolicy:
        return cls(cfg.admin_ids)

    def is_admin(self, user_id: int) -> bool:
        return int(user_id) in self.admin_ids
