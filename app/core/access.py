"""Shared-secret checks and the compound tenant check used by every slave-facing call.

Policy when a secret is not configured:
- agent (API_KEY): open, every agent request passes
- admin (ADMIN_KEY): closed, every admin request is rejected
- master (MASTER_KEY): closed, every push is rejected
"""

from __future__ import annotations

import logging

from app.core.client_registry import Client, ClientRegistry
from app.core.errors import Forbidden, Unauthorized
from app.utils.crypto import secret_equals

log = logging.getLogger(__name__)


class AccessGate:
    def __init__(self, registry: ClientRegistry, agent_key: str = "", admin_key: str = "", master_key: str = ""):
        self.registry = registry
        self.agent_key = agent_key or ""
        self.admin_key = admin_key or ""
        self.master_key = master_key or ""

    def agent_ok(self, supplied: str | None) -> bool:
        if not self.agent_key:
            return True
        return secret_equals(supplied, self.agent_key)

    def admin_ok(self, supplied: str | None) -> bool:
        if not self.admin_key:
            return False
        return secret_equals(supplied, self.admin_key)

    def master_ok(self, supplied: str | None) -> bool:
        if not self.master_key:
            return False
        return secret_equals(supplied, self.master_key)

    def require_agent(self, supplied: str | None) -> None:
        if not self.agent_ok(supplied):
            raise Unauthorized("unauthorized")

    def require_admin(self, supplied: str | None) -> None:
        if not self.admin_ok(supplied):
            log.warning("admin request rejected")
            raise Unauthorized("unauthorized admin")

    def require_master(self, supplied: str | None) -> None:
        if not self.master_ok(supplied):
            log.warning("master push rejected")
            raise Unauthorized("unauthorized master")

    def require_client(self, api_key: str | None, group: str | None = None) -> Client:
        """Resolve an API key to an active client entitled to `group` (when given)."""
        k = (api_key or "").strip()
        if not k:
            raise Unauthorized("missing x-api-key")
        c = self.registry.find_by_api_key(k)
        if c is None:
            log.warning("client rejected: unknown api key")
            raise Unauthorized("invalid api key")
        if not self.registry.is_active(c):
            log.warning("client %s rejected: expired/disabled", c.client_id)
            raise Forbidden("expired/disabled")
        if group and str(c.group_id) != str(group):
            log.warning("client %s rejected: group mismatch (%s != %s)", c.client_id, group, c.group_id)
            raise Forbidden("group mismatch")
        return c
