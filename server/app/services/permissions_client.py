"""HTTP client for the permission endpoints, plus an epoch-checked map cache."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

import httpx

from app.auth.modules import Action, Module, parse_module
from app.auth.resolver import NO_ACCESS, ModuleFlags
from app.auth.roles import Role
from app.core.config import settings
from app.schemas.role_permission import ModuleFlagsOut

logger = logging.getLogger(__name__)

_FLAG_ALIASES = {name: info.alias for name, info in ModuleFlagsOut.model_fields.items()}

INVALID_RESPONSE = "Permission service returned an invalid response"


class PermissionsClientError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ModuleMapSnapshot:
    role: Role
    epoch: int
    modules: dict[Module, ModuleFlags] = field(default_factory=dict)

    def flags(self, module: Module) -> ModuleFlags:
        return self.modules.get(module, NO_ACCESS)


@dataclass(frozen=True)
class PermissionListing:
    role: Role
    epoch: int
    items: list[dict[str, Any]] = field(default_factory=list)


def _flags_from_wire(data: dict[str, Any]) -> ModuleFlags:
    parsed = ModuleFlagsOut.model_validate(data)
    return ModuleFlags(**parsed.model_dump())


@contextmanager
def _parsing(url: str) -> Iterator[None]:
    try:
        yield
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        logger.warning("permissions_api_unexpected_payload", extra={"url": url})
        raise PermissionsClientError(INVALID_RESPONSE) from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    detail = payload.get("detail") if isinstance(payload, dict) else None
    if isinstance(detail, str) and detail:
        return detail
    return f"Error {response.status_code}: {response.reason_phrase}"


class PermissionsClient:
    """Talks to the permission API on behalf of an administrator session.

    ``http`` may be any ``httpx.Client`` (including FastAPI's ``TestClient``);
    when omitted one is built from ``PERMISSIONS_API_URL``.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str | None = None,
        http: httpx.Client | None = None,
        timeout: float | None = None,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.Client(
            base_url=base_url or settings.PERMISSIONS_API_URL,
            timeout=timeout or settings.PERMISSIONS_API_TIMEOUT,
        )
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "PermissionsClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._http.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.exception("permissions_api_unreachable", extra={"method": method, "url": url})
            raise PermissionsClientError("Permission service unreachable") from exc
        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning(
                "permissions_api_error",
                extra={"method": method, "url": url, "status_code": response.status_code, "detail": detail},
            )
            raise PermissionsClientError(detail, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("permissions_api_invalid_body", extra={"method": method, "url": url})
            raise PermissionsClientError(INVALID_RESPONSE, status_code=response.status_code) from exc

    def list_permissions(self, role: Role) -> PermissionListing:
        url = "/role-permissions"
        payload = self._request("GET", url, params={"role": role.value})
        with _parsing(url):
            return PermissionListing(role=role, epoch=int(payload["epoch"]), items=list(payload["items"]))

    def get_epoch(self, role: Role) -> int:
        url = "/role-permissions/epoch"
        payload = self._request("GET", url, params={"role": role.value})
        with _parsing(url):
            return int(payload["epoch"])

    def module_permissions(self, role: Role) -> ModuleMapSnapshot:
        url = "/module-permissions"
        payload = self._request("GET", url, params={"role": role.value})
        modules: dict[Module, ModuleFlags] = {}
        with _parsing(url):
            for name, data in payload["modules"].items():
                try:
                    module = parse_module(name)
                except ValueError:
                    logger.warning("permissions_api_unknown_module", extra={"permission_module": name})
                    continue
                modules[module] = _flags_from_wire(data)
            epoch = int(payload["epoch"])
        return ModuleMapSnapshot(role=role, epoch=epoch, modules=modules)

    def set_flag(self, role: Role, module: Module, action: Action, value: bool) -> dict[str, Any]:
        return self._request(
            "PUT",
            "/role-permissions/flag",
            json={"role": role.value, "module": module.value, "action": action.value, "value": value},
        )

    def create_permission(self, role: Role, module: Module, flags: ModuleFlags) -> dict[str, Any]:
        body = ModuleFlagsOut(**flags.as_dict()).model_dump(by_alias=True)
        body.update({"role": role.value, "module": module.value})
        return self._request("POST", "/role-permissions", json=body)

    def update_permission(self, permission_id: int, **changes: bool) -> dict[str, Any]:
        unknown = set(changes) - set(_FLAG_ALIASES)
        if unknown:
            raise ValueError(f"Unknown permission flags: {', '.join(sorted(unknown))}")
        body = {_FLAG_ALIASES[name]: value for name, value in changes.items()}
        return self._request("PATCH", f"/role-permissions/{permission_id}", json=body)


class ModulePermissionCache:
    """Per-role module maps, trusted only while their epoch is current."""

    def __init__(self, client: PermissionsClient) -> None:
        self._client = client
        self._entries: dict[Role, ModuleMapSnapshot] = {}

    def get(self, role: Role) -> ModuleMapSnapshot:
        held = self._entries.get(role)
        if held is not None:
            if self._client.get_epoch(role) == held.epoch:
                return held
            logger.debug("module_permission_cache_stale", extra={"role": role.value, "epoch": held.epoch})
        snapshot = self._client.module_permissions(role)
        self._entries[role] = snapshot
        return snapshot

    def invalidate(self, role: Role) -> None:
        self._entries.pop(role, None)

    def allows(self, role: Role, module: Module, action: Action) -> bool:
        try:
            snapshot = self.get(role)
        except PermissionsClientError:
            logger.warning(
                "module_permission_check_denied",
                extra={"role": role.value, "permission_module": module.value, "action": action.value},
            )
            return False
        return snapshot.flags(module).allows(action)
