# Auth module for the CollabPay pipeline
# Provides role-based access control and authentication dependencies

from auth.roles import (
    UserType,
    Permission,
    ROLE_PERMISSIONS,
    get_permissions_for_role,
    get_user_type,
    has_permission,
    has_any_permission,
)

from auth.decorators import (
    AuthError,
    require_user_type,
    require_permission,
    require_admin,
)

__all__ = [
    # Roles
    "UserType",
    "Permission",
    "ROLE_PERMISSIONS",
    "get_permissions_for_role",
    "get_user_type",
    "has_permission",
    "has_any_permission",

    # Dependencies
    "AuthError",
    "require_user_type",
    "require_permission",
    "require_admin",
]
