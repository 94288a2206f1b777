from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.deps import get_current_identity
from app.auth.enforcement import PAGE_ACCESS, Identity, PageAccessDenied, guard_page
from app.auth.modules import Action, Module
from app.schemas.auth import AccessCheckResponse, PageGuardOut

router = APIRouter(prefix="/access", tags=["access"])

logger = logging.getLogger(__name__)


@router.get("/check", response_model=AccessCheckResponse)
def check_access(
    module: Module = Query(...),
    action: Action = Query(...),
    identity: Identity = Depends(get_current_identity),
) -> AccessCheckResponse:
    return AccessCheckResponse(module=module, action=action, allowed=identity.can(module, action))


@router.get("/pages", response_model=PageGuardOut)
def check_page_access(
    path: str = Query(..., min_length=1),
    identity: Identity = Depends(get_current_identity),
) -> PageGuardOut:
    allowed_roles = PAGE_ACCESS.get(path)
    if allowed_roles is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown page")

    decision = guard_page(identity, allowed_roles)
    if not decision.allowed:
        logger.warning(
            "page_access_denied",
            extra={"path": path, "role": identity.role.value if identity.role else None},
        )
        raise PageAccessDenied(decision)
    return PageGuardOut(
        path=path,
        state=decision.state,
        required_roles=list(decision.required_roles),
        actual_role=decision.actual_role,
    )
