"""
api/routes/v1/rbac.py -- Role/permission administration endpoints.

Routes:
  GET    /api/v1/roles                         -- roles with granted keys       (roles:read)
  POST   /api/v1/roles                         -- create role                   (roles:create)
  GET    /api/v1/roles/{id}                    -- one role with granted keys    (roles:read)
  PATCH  /api/v1/roles/{id}                    -- rename / re-describe role     (roles:update)
  DELETE /api/v1/roles/{id}                    -- delete role and its edges     (roles:delete)
  POST   /api/v1/roles/{id}/permissions/{key}  -- grant permission to role      (roles:update)
  DELETE /api/v1/roles/{id}/permissions/{key}  -- revoke permission from role   (roles:update)
  GET    /api/v1/permissions                   -- permission catalogue          (permissions:read)
  GET    /api/v1/users/{id}/roles              -- roles + effective permissions (users:read, uncached)
  POST   /api/v1/users/{id}/roles/{role_name}  -- assign role                   (users:update)
  DELETE /api/v1/users/{id}/roles/{role_name}  -- unassign role                 (users:update)
  PATCH  /api/v1/users/{id}/active             -- activate / deactivate         (users:update)

Every route declares its permission set with require_permissions(); the
guard enforces it before the handler body runs.

Role assignment, grants, revocations and role deletion go through
PermissionGraphReader so the affected cache entries are dropped in the same
call.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.dependencies import require_permissions
from api.errors import raise_for
from api.models import (
    ActiveUpdate,
    MessageResponse,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    UserRolesResponse,
)
from auth.sessions import SessionManager
from rbac.models import Permission, Role
from rbac.permissions import PermissionGraphReader
from rbac.store import RoleStore

logger = logging.getLogger("accessgate.api.rbac")

router = APIRouter()


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(request: Request, _: int = Depends(require_permissions("roles:read"))) -> list[RoleResponse]:
    role_store: RoleStore = request.app.state.role_store
    return [_role_response(r) for r in role_store.list_roles()]


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(
    request: Request, body: RoleCreate, _: int = Depends(require_permissions("roles:create"))
) -> RoleResponse:
    role_store: RoleStore = request.app.state.role_store
    try:
        role = role_store.create_role(body.name, body.description)
    except IntegrityError:
        raise _role_name_taken() from None
    logger.info("Role '%s' created (id %s)", role.name, role.id)
    return _role_response(role)


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(request: Request, role_id: int, _: int = Depends(require_permissions("roles:read"))) -> RoleResponse:
    role = _require_role_id(request, role_id)
    role.permissions = request.app.state.role_store.permissions_of(role.id)
    return _role_response(role)


@router.patch("/roles/{role_id}", response_model=RoleResponse)
def update_role(
    request: Request, role_id: int, body: RoleUpdate, _: int = Depends(require_permissions("roles:update"))
) -> RoleResponse:
    role_store: RoleStore = request.app.state.role_store
    try:
        updated = role_store.update_role(role_id, name=body.name, description=body.description)
    except IntegrityError:
        raise _role_name_taken() from None
    if not updated:
        raise _not_found("Role not found.")
    role = _require_role_id(request, role_id)
    role.permissions = role_store.permissions_of(role.id)
    return _role_response(role)


@router.delete("/roles/{role_id}", response_model=MessageResponse)
def delete_role(
    request: Request, role_id: int, _: int = Depends(require_permissions("roles:delete"))
) -> MessageResponse:
    """Delete a role. Every principal holding it loses its permissions immediately."""
    role = _require_role_id(request, role_id)
    reader: PermissionGraphReader = request.app.state.permission_reader
    reader.delete_role(role.id)
    logger.info("Role '%s' deleted (id %s)", role.name, role.id)
    return MessageResponse(message=f"Role '{role.name}' deleted.")


@router.post("/roles/{role_id}/permissions/{key}", response_model=MessageResponse, status_code=201)
def grant_permission(
    request: Request, role_id: int, key: str, _: int = Depends(require_permissions("roles:update"))
) -> MessageResponse:
    role = _require_role_id(request, role_id)
    permission = _require_permission(request, key)
    reader: PermissionGraphReader = request.app.state.permission_reader
    if not reader.grant(role.id, permission.id):
        return MessageResponse(message=f"'{key}' was already granted to '{role.name}'.")
    logger.info("Granted %s to role '%s'", key, role.name)
    return MessageResponse(message=f"'{key}' granted to '{role.name}'.")


@router.delete("/roles/{role_id}/permissions/{key}", response_model=MessageResponse)
def revoke_permission(
    request: Request, role_id: int, key: str, _: int = Depends(require_permissions("roles:update"))
) -> MessageResponse:
    role = _require_role_id(request, role_id)
    permission = _require_permission(request, key)
    reader: PermissionGraphReader = request.app.state.permission_reader
    if not reader.revoke(role.id, permission.id):
        raise _not_found("Permission is not granted to this role.")
    logger.info("Revoked %s from role '%s'", key, role.name)
    return MessageResponse(message=f"'{key}' revoked from '{role.name}'.")

@router.get("/permissions", response_model=list[PermissionResponse])
def list_permissions(
    request: Request, _: int = Depends(require_permissions("permissions:read"))
) -> list[PermissionResponse]:
    role_store: RoleStore = request.app.state.role_store
    return [PermissionResponse(id=p.id, key=p.key, description=p.description) for p in role_store.list_permissions()]


@router.get("/users/{user_id}/roles", response_model=UserRolesResponse)
def get_user_roles(
    request: Request, user_id: int, _: int = Depends(require_permissions("users:read"))
) -> UserRolesResponse:
    _require_user(request, user_id)
    role_store: RoleStore = request.app.state.role_store
    return UserRolesResponse(
        user_id=user_id,
        roles=role_store.role_names_of(user_id),
        permissions=role_store.permission_keys_for_principal(user_id),
    )


@router.post("/users/{user_id}/roles/{role_name}", response_model=MessageResponse, status_code=201)
def assign_role(
    request: Request, user_id: int, role_name: str, _: int = Depends(require_permissions("users:update"))
) -> MessageResponse:
    _require_user(request, user_id)
    role = _require_role(request, role_name)
    reader: PermissionGraphReader = request.app.state.permission_reader
    if not reader.assign_role(user_id, role.id):
        return MessageResponse(message=f"Role '{role.name}' was already assigned.")
    return MessageResponse(message=f"Role '{role.name}' assigned.")


@router.delete("/users/{user_id}/roles/{role_name}", response_model=MessageResponse)
def unassign_role(
    request: Request, user_id: int, role_name: str, _: int = Depends(require_permissions("users:update"))
) -> MessageResponse:
    role = _require_role(request, role_name)
    reader: PermissionGraphReader = request.app.state.permission_reader
    if not reader.unassign_role(user_id, role.id):
        raise _not_found("Role assignment not found.")
    return MessageResponse(message=f"Role '{role.name}' removed.")


@router.patch("/users/{user_id}/active", response_model=MessageResponse)
def set_active(
    request: Request,
    user_id: int,
    body: ActiveUpdate,
    caller_id: int = Depends(require_permissions("users:update")),
) -> MessageResponse:
    """Activate or deactivate an account. Deactivating yourself is refused."""
    if not body.is_active and user_id == caller_id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
        )
    sessions: SessionManager = request.app.state.sessions
    raise_for(sessions.set_active(user_id, body.is_active))
    state = "activated" if body.is_active else "deactivated"
    return MessageResponse(message=f"User {state}.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_user(request: Request, user_id: int) -> None:
    # Inactive accounts are still administrable, so look at the raw record.
    if request.app.state.user_store.find_by_id(user_id) is None:
        raise _not_found("User not found.")


def _require_role(request: Request, role_name: str) -> Role:
    role_store: RoleStore = request.app.state.role_store
    role = role_store.get_role_by_name(role_name)
    if role is None:
        raise _not_found("Role not found.")
    return role


def _require_role_id(request: Request, role_id: int) -> Role:
    role = request.app.state.role_store.get_role(role_id)
    if role is None:
        raise _not_found("Role not found.")
    return role


def _require_permission(request: Request, key: str) -> Permission:
    permission = request.app.state.role_store.get_permission_by_key(key)
    if permission is None:
        raise _not_found("Permission not found.")
    return permission


def _role_response(role: Role) -> RoleResponse:
    return RoleResponse(id=role.id, name=role.name, description=role.description, permissions=role.permissions)


def _not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": message})


def _role_name_taken() -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"code": "duplicate_role", "message": "A role with this name already exists."},
    )
