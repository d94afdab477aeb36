# Role-Based Access Control for the CollabPay pipeline
# This module defines user roles and the capabilities each operation checks

from enum import Enum
from typing import List, Set

from database.models import UserType


class Permission(str, Enum):
    """Fine-grained capabilities checked at the entry of each pipeline operation."""

    # Brand permissions
    REVIEW_PROPOSALS = "review_proposals"
    PAY_PROPOSALS = "pay_proposals"

    # Influencer permissions
    SUBMIT_PROPOSALS = "submit_proposals"
    MARK_COMPLETION = "mark_completion"

    # Common permissions
    VIEW_CAMPAIGNS = "view_campaigns"
    RAISE_DISPUTES = "raise_disputes"
    PARTICIPATE_DISPUTES = "participate_disputes"

    # Admin permissions
    FINALIZE_CAMPAIGNS = "finalize_campaigns"
    TRIGGER_PAYOUTS = "trigger_payouts"
    VIEW_LEDGER = "view_ledger"
    REVIEW_DISPUTES = "review_disputes"
    RESOLVE_DISPUTES = "resolve_disputes"


# Role to permissions mapping
ROLE_PERMISSIONS: dict[UserType, Set[Permission]] = {
    UserType.BRAND: {
        # Brand-specific
        Permission.REVIEW_PROPOSALS,
        Permission.PAY_PROPOSALS,
        # Common
        Permission.VIEW_CAMPAIGNS,
        Permission.RAISE_DISPUTES,
        Permission.PARTICIPATE_DISPUTES,
    },

    UserType.INFLUENCER: {
        # Influencer-specific
        Permission.SUBMIT_PROPOSALS,
        Permission.MARK_COMPLETION,
        # Common
        Permission.VIEW_CAMPAIGNS,
        Permission.RAISE_DISPUTES,
        Permission.PARTICIPATE_DISPUTES,
    },

    UserType.ADMIN: {
        # Admin acts on behalf of the platform, never as a campaign party
        *(p for p in Permission if p not in (
            Permission.SUBMIT_PROPOSALS,
            Permission.MARK_COMPLETION,
            Permission.RAISE_DISPUTES,
        ))
    },
}


def get_permissions_for_role(user_type: UserType) -> Set[Permission]:
    """Get all permissions for a given user type."""
    return ROLE_PERMISSIONS.get(user_type, set())


def has_permission(user_type: UserType, permission: Permission) -> bool:
    """Check if a user type has a specific permission."""
    return permission in get_permissions_for_role(user_type)


def has_any_permission(user_type: UserType, permissions: List[Permission]) -> bool:
    """Check if a user type has any of the given permissions."""
    user_permissions = get_permissions_for_role(user_type)
    return any(p in user_permissions for p in permissions)


def get_user_type(user) -> UserType:
    """Extract the closed UserType variant from a User row."""
    val = user.user_type.value if hasattr(user.user_type, 'value') else user.user_type
    return UserType(str(val).lower())
