"""
Identity source: role and company affiliation of the authenticated caller,
read from the ``profiles`` table.
"""

from typing import Any

from app.db.helpers import DatabaseError, fetch_one, with_db_retry
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import AuthorizationError, ConfigurationError, TransientFetchError
from ..domain.models import ROLES, CallerIdentity

logger = get_logger(__name__)


@with_db_retry(max_retries=2, base_delay=0.1)
async def _fetch_profile_row(user_id: str) -> dict[str, Any] | None:
    query = """
    SELECT id, email, role, company_id
    FROM profiles
    WHERE id = %s
    """
    return await fetch_one(query, (user_id,))


def profile_to_identity(row: dict[str, Any]) -> CallerIdentity:
    role = row.get("role")
    if role not in ROLES:
        raise ConfigurationError(f"Unrecognized role: {role!r}", operation="load_identity")

    company_id = row.get("company_id")
    return CallerIdentity(
        user_id=str(row["id"]),
        role=role,
        company_id=str(company_id) if company_id else None,
        email=row.get("email"),
    )


async def get_caller_identity(user_id: str) -> CallerIdentity:
    """
    Load the caller's identity.

    Raises:
        AuthorizationError: No profile exists for the authenticated user
        ConfigurationError: The profile carries an unknown role
        TransientFetchError: The profiles lookup failed after retries
    """
    try:
        row = await _fetch_profile_row(user_id)
    except DatabaseError as e:
        logger.error("Database error loading caller identity", user_id=user_id, error=str(e))
        raise TransientFetchError(f"Profile lookup failed: {e}", operation="load_identity") from e

    if not row:
        logger.info("Profile not found for authenticated user", user_id=user_id)
        raise AuthorizationError("Profile not found", operation="load_identity")

    identity = profile_to_identity(row)
    logger.debug(
        "Caller identity loaded",
        user_id=user_id,
        role=identity.role,
        company_id=identity.company_id,
    )
    return identity
