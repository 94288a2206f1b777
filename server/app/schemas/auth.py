from pydantic import BaseModel, EmailStr

from app.auth.enforcement import GuardState
from app.auth.modules import Action, Module
from app.auth.roles import Role
from app.schemas.role_permission import ModuleFlagsOut


class WhoAmIResponse(BaseModel):
    id: int
    user: EmailStr
    username: str
    role: Role
    is_super_admin: bool = False
    full_name: str | None = None
    epoch: int = 0
    modules: dict[str, ModuleFlagsOut] = {}


class AccessCheckResponse(BaseModel):
    module: Module
    action: Action
    allowed: bool


class PageGuardOut(BaseModel):
    path: str
    state: GuardState
    required_roles: list[Role] = []
    actual_role: Role | None = None
    safe_landing: str | None = None
    message: str | None = None
