"""
api/routes/v1/users.py -- Account self-service and admin user management.

Routes:
  PATCH  /api/v1/users/me       -- update own name/email (requires auth)
  DELETE /api/v1/users/me       -- deactivate own account (requires auth); 204
  GET    /api/v1/users          -- list users (admin only)
  GET    /api/v1/users/{id}     -- one user (admin only)
  PATCH  /api/v1/users/{id}     -- change role / active flag (admin only)
  DELETE /api/v1/users/{id}     -- permanently delete a user (admin only); 204

Admin routes use restrict_to({"admin"}), which runs the access guard first
and the role gate second.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import UpdateMeRequest, UserPatch, UserResponse
from auth.dependencies import get_current_user, restrict_to
from auth.flows import AuthFlows
from auth.models import User
from auth.store import UserStore

router = APIRouter()

require_admin = restrict_to({"admin"})


# ---------------------------------------------------------------------------
# Self-service (authenticated)
# ---------------------------------------------------------------------------


@router.patch("/users/me", response_model=UserResponse)
def update_me(
    request: Request,
    body: UpdateMeRequest,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update the caller's name and/or email. Password fields are rejected."""
    flows: AuthFlows = request.app.state.auth_flows
    updated = flows.update_profile(current_user, **body.model_dump(exclude_unset=True))
    return UserResponse.from_user(updated)


@router.delete("/users/me", status_code=204)
def delete_me(request: Request, current_user: User = Depends(get_current_user)) -> Response:
    """Deactivate the caller's account. The record is kept; login stops working."""
    flows: AuthFlows = request.app.state.auth_flows
    flows.deactivate(current_user)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, current_user: User = Depends(require_admin)) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, current_user: User = Depends(require_admin)) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    return _user_to_response(user_store.find_by_id(user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Update a user's role or active status. Admin only.

    Admins cannot deactivate or demote themselves -- there would be no way
    back without direct database access.
    """
    user_store: UserStore = request.app.state.user_store

    updates: dict = {}
    if body.role is not None:
        updates["role"] = body.role.value
    if body.active is not None:
        updates["active"] = body.active
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    if user_id == current_user.id and (updates.get("active") is False or updates.get("role", "admin") != "admin"):
        raise HTTPException(
            status_code=400,
            detail={"code": "self_lockout", "message": "You cannot deactivate or demote your own account."},
        )

    return _user_to_response(user_store.update(user_id, **updates))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int, current_user: User = Depends(require_admin)) -> Response:
    """Permanently delete a user. Admin only.

    The deleted user's outstanding tokens stop working at once: the access
    guard no longer finds their subject.
    """
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_lockout", "message": "You cannot delete your own account from the admin API."},
        )
    user_store: UserStore = request.app.state.user_store
    if not user_store.delete(user_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return UserResponse.from_user(user)
