from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth.deps import STORE_UNAVAILABLE, get_current_user
from app.auth.roles import Role
from app.core.db import get_db
from app.models.user import User
from app.schemas.auth import WhoAmIResponse
from app.schemas.role_permission import ModuleFlagsOut
from app.services.role_permissions import PermissionStoreError, module_permission_map

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/whoami", response_model=WhoAmIResponse)
def whoami(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> WhoAmIResponse:
    role = Role(user.role)
    try:
        modules, epoch = module_permission_map(db, role)
    except PermissionStoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORE_UNAVAILABLE) from exc
    return WhoAmIResponse(
        id=user.id,
        user=user.email,
        username=user.username,
        role=role,
        is_super_admin=user.is_super_admin,
        full_name=user.full_name,
        epoch=epoch,
        modules={module.value: ModuleFlagsOut(**flags.as_dict()) for module, flags in modules.items()},
    )
