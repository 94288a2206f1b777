from .user import User  # noqa: F401
from .role_permission import RolePermission, RolePermissionAudit, RolePermissionEpoch  # noqa: F401
