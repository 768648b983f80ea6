"""
Access scope resolution.

Decides which company a caller may see. Standard users are pinned to their
own company no matter what the request asks for; super admins pick freely
and may leave the scope open ("all companies").
"""

from app.infrastructure.observability.logging import get_logger

from ...domain.errors import ConfigurationError
from ...domain.models import PRIVILEGED_ROLES, ROLES, CallerIdentity

logger = get_logger(__name__)


def resolve_company_scope(
    role: str, caller_company_id: str | None, requested_company_id: str | None
) -> str | None:
    """
    Effective company scope for a caller.

    Args:
        role: Caller role from the profiles table
        caller_company_id: Company the caller belongs to
        requested_company_id: Company the request asked for (only honoured for
            privileged roles)

    Returns:
        Company id to restrict to, or None for "all companies"

    Raises:
        ConfigurationError: Unknown role, or a standard user without a company
    """
    if role not in ROLES:
        raise ConfigurationError(f"Unrecognized role: {role!r}", operation="resolve_scope")

    if role in PRIVILEGED_ROLES:
        requested = (requested_company_id or "").strip()
        return requested or None

    if not caller_company_id:
        # An open scope here would leak every company's records
        raise ConfigurationError(
            "Standard user has no company affiliation", operation="resolve_scope"
        )

    if requested_company_id and requested_company_id != caller_company_id:
        logger.warning(
            "Ignoring requested company outside caller scope",
            caller_company_id=caller_company_id,
            requested_company_id=requested_company_id,
        )
    return caller_company_id


def resolve_for_identity(identity: CallerIdentity, requested_company_id: str | None) -> str | None:
    return resolve_company_scope(identity.role, identity.company_id, requested_company_id)
