"""
auth/roles.py -- Role-based authorization.

authorize() is a pure check. It must run after the access guard has resolved
a principal; being handed None is a wiring bug in the route, not a
client-facing auth failure, so it raises RuntimeError rather than an
AuthError.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Set

from auth.errors import Forbidden
from auth.models import User

logger = logging.getLogger("trailgate.auth.roles")


def authorize(principal: User | None, allowed_roles: Set[str]) -> User:
    """Return principal if its role is in allowed_roles, else raise Forbidden."""
    if principal is None:
        raise RuntimeError("authorize() called before the access guard resolved a principal")
    if principal.role not in allowed_roles:
        logger.info("Forbidden: user_id=%s role=%s allowed=%s", principal.id, principal.role, sorted(allowed_roles))
        raise Forbidden()
    return principal
