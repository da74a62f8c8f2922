"""Order access resolution for owners, guests holding a magic link, and staff."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable
from uuid import UUID

from src.api.middleware.error_handler import AuthenticationError, AuthorizationError
from src.schemas.auth import UserContext

logger = logging.getLogger(__name__)

DEFAULT_STAFF_ROLES = frozenset({"STAFF", "ADMIN"})


class AccessKind(str, Enum):
    """Kinds of authorization context an order request can resolve to."""

    NONE = "none"
    OWNER = "owner"
    GUEST = "guest"
    STAFF = "staff"


@dataclass(frozen=True)
class AccessContext:
    """Result of resolving a caller against one order.

    Never cached: it is rebuilt on every request because the capability
    token can expire between two calls of the same browser session.
    """

    kind: AccessKind
    order_id: str | None = None
    user_id: UUID | None = None
    role: str | None = None
    token_supplied: bool = False

    @property
    def is_staff(self) -> bool:
        return self.kind == AccessKind.STAFF

    @property
    def is_buyer(self) -> bool:
        return self.kind in (AccessKind.OWNER, AccessKind.GUEST)

    @property
    def actor_label(self) -> str:
        """Short actor description stored in audit entries."""
        if self.kind == AccessKind.STAFF:
            return f"staff:{self.role}"
        return self.kind.value


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_magic_link_valid(order: dict[str, Any], token: str, now: datetime | None = None) -> bool:
    """Check a capability token against an order's stored link and expiry."""
    stored = order.get("magic_link_hash")
    expires_at = _parse_datetime(order.get("magic_link_expires_at"))
    if not stored or not token or expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return secrets.compare_digest(str(stored), token) and now < expires_at


def resolve_access(
    order: dict[str, Any],
    user: UserContext | None,
    token: str | None,
    now: datetime | None = None,
    staff_roles: Iterable[str] = DEFAULT_STAFF_ROLES,
) -> AccessContext:
    """Resolve the caller's authorization context for an order.

    Precedence: staff role, then ownership, then a valid capability token.

    Args:
        order: The order row.
        user: Authenticated principal, if any.
        token: Capability token from the magic link, if any.
        now: Clock override for tests.
        staff_roles: Roles granting full access.

    Returns:
        AccessContext: The resolved context; kind NONE when nothing matched.
    """
    order_id = str(order["id"])
    token_supplied = bool(token)

    if user is not None:
        role = (user.role or "").upper()
        if role in {r.upper() for r in staff_roles}:
            return AccessContext(AccessKind.STAFF, order_id, user.user_id, role, token_supplied)

        owner_id = order.get("owner_user_id")
        if owner_id and str(owner_id) == str(user.user_id):
            return AccessContext(AccessKind.OWNER, order_id, user.user_id, role, token_supplied)

    if token and is_magic_link_valid(order, token, now):
        return AccessContext(
            AccessKind.GUEST,
            order_id,
            user.user_id if user else None,
            None,
            token_supplied,
        )

    return AccessContext(
        AccessKind.NONE,
        order_id,
        user.user_id if user else None,
        user.role if user else None,
        token_supplied,
    )


def require_order_access(
    context: AccessContext,
    allowed: Iterable[AccessKind] = (AccessKind.OWNER, AccessKind.GUEST, AccessKind.STAFF),
) -> AccessContext:
    """Turn a resolved context into an authorization decision.

    Raises:
        AuthenticationError: No principal and no valid capability token
            (including an expired or mismatching one).
        AuthorizationError: A principal is present but neither owns the
            order nor holds a sufficient role, or the context kind is not
            allowed for this operation.
    """
    if context.kind == AccessKind.NONE:
        if context.user_id is None:
            if context.token_supplied:
                logger.info("Rejected invalid or expired magic link for order %s", context.order_id)
                raise AuthenticationError("Invalid or expired magic link")
            raise AuthenticationError("Authentication required")
        raise AuthorizationError("Access denied")

    if context.kind not in tuple(allowed):
        raise AuthorizationError("Access denied")

    return context
