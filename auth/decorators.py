# Authentication and Authorization Dependencies for the CollabPay pipeline
# These provide route-level access control; services re-check capabilities

from fastapi import HTTPException, status, Depends

from database.models import User
from auth.roles import UserType, Permission, has_any_permission, get_user_type
from auth.dependencies import get_current_user


class AuthError(HTTPException):
    """Custom exception for authentication/authorization errors."""

    def __init__(self, detail: str, status_code: int = status.HTTP_403_FORBIDDEN):
        super().__init__(status_code=status_code, detail=detail)


def require_user_type(*allowed_types: UserType):
    """
    Dependency that requires the user to be one of the specified types.

    Usage:
        @router.post("/proposals")
        async def create_proposal(
            user: User = Depends(require_user_type(UserType.INFLUENCER))
        ):
            ...
    """
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        user_type = get_user_type(current_user)

        if user_type not in allowed_types:
            allowed_names = ", ".join(t.value for t in allowed_types)
            raise AuthError(
                detail=f"This endpoint requires user type: {allowed_names}",
                status_code=status.HTTP_403_FORBIDDEN
            )

        return current_user

    return dependency


def require_permission(*permissions: Permission):
    """
    Dependency that requires the user to have one of the given permissions.

    Usage:
        @router.post("/disputes")
        async def create_dispute(
            user: User = Depends(require_permission(Permission.RAISE_DISPUTES))
        ):
            ...
    """
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        user_type = get_user_type(current_user)

        if not has_any_permission(user_type, list(permissions)):
            raise AuthError(
                detail="You don't have permission to perform this action",
                status_code=status.HTTP_403_FORBIDDEN
            )

        return current_user

    return dependency


def require_admin():
    """
    Dependency that requires the user to be an admin.

    Usage:
        @router.put("/admin/campaigns/{campaign_id}/status")
        async def set_status(user: User = Depends(require_admin())):
            ...
    """
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if get_user_type(current_user) != UserType.ADMIN:
            raise AuthError(
                detail="Admin access required",
                status_code=status.HTTP_403_FORBIDDEN
            )

        return current_user

    return dependency
