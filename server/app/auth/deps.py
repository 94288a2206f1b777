
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.auth.enforcement import Identity
from app.auth.roles import Role
from app.auth.security import decode_access_token
from app.core.db import get_db
from app.models.user import User
from app.services.role_permissions import PermissionStoreError, load_permission_index

bearer_scheme = HTTPBearer(auto_error=False)

STORE_UNAVAILABLE = "Permission store unavailable"


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    token = credentials.credentials
    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    subject = payload.get("sub")
    if subject is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user: User | None = None
    try:
        user = db.get(User, int(subject))
    except (TypeError, ValueError):
        user = None

    if user is None:
        user = db.query(User).filter(User.email == str(subject)).first()

    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


def get_current_identity(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Identity:
    role = Role(user.role)
    if role is Role.SUPER_ADMIN:
        return Identity.resolved(role, user_id=user.id)
    try:
        index = load_permission_index(db, role)
    except PermissionStoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORE_UNAVAILABLE) from exc
    return Identity.resolved(role, index, user_id=user.id)


def require_super_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super Admin privileges required")
    return user
