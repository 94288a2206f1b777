import app.models  # noqa: F401
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.auth.enforcement import PageAccessDenied
from app.core.config import settings
from app.routers import access as access_router
from app.routers import role_permissions as role_permissions_router
from app.routers import whoami as whoami_router

app = FastAPI(title="SchoolDesk Permissions API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(whoami_router.router)
app.include_router(access_router.router)
app.include_router(role_permissions_router.router)


@app.exception_handler(PageAccessDenied)
async def page_access_denied(request: Request, exc: PageAccessDenied) -> JSONResponse:
    decision = exc.decision
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={
            "detail": str(exc),
            "code": "access_denied",
            "path": request.query_params.get("path", request.url.path),
            "state": decision.state.value,
            "required_roles": [role.value for role in decision.required_roles],
            "actual_role": decision.actual_role.value if decision.actual_role else None,
            "safe_landing": decision.safe_landing,
        },
    )


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}
