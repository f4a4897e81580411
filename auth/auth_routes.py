"""
FastAPI authentication and user-management endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, StrictInt
from sqlalchemy.orm import Session
from loguru import logger

from auth.access_control import Principal
from auth.auth_manager import auth_manager
from auth.credit_ledger import set_credits
from auth.directory import UserDirectory, validate_new_account
from auth.manager_assignment import reassign_manager
from auth.rbac_dependencies import get_current_principal, require_operation
from auth.roles import Operation
from core.config import settings
from core.database import get_db

router = APIRouter(prefix="/auth", tags=["auth"])

# ==================== REQUEST MODELS ====================


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class CreateUserRequest(BaseModel):
    name: str
    email: str
    password: str
    phone: Optional[str] = None
    role: Optional[str] = None


class RoleChangeRequest(BaseModel):
    role: str


class StatusChangeRequest(BaseModel):
    # Raw JSON value; the directory rejects anything but a boolean
    is_active: Any = None


class ManagerAssignmentRequest(BaseModel):
    # Required key; an explicit null unassigns
    manager_id: Optional[StrictInt] = Field(...)


class CreditsRequest(BaseModel):
    # Raw JSON value; the ledger rejects non-integers and negatives
    credits: Any = None


def _public_user(user) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
    }

# ==================== REGISTRATION & LOGIN ====================


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new client account; a personal manager is assigned automatically."""
    user, token = auth_manager.register(
        db,
        name=data.name,
        email=data.email,
        password=data.password,
        phone=data.phone,
    )
    return {
        "message": "Registration successful",
        "user": {**_public_user(user), "manager_id": user.manager_id},
        "token": token,
    }


@router.post("/login")
async def login(data: LoginRequest, db: Session = Depends(get_db)):
    user, token = auth_manager.login(db, data.email, data.password)
    return {
        "message": "Login successful",
        "user": _public_user(user),
        "token": token,
    }

# ==================== PASSWORD MANAGEMENT ====================


@router.post("/forgot-password")
async def forgot_password(data: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """
    Request a password reset token.

    Does not reveal whether the email exists.
    """
    token = auth_manager.request_password_reset(db, data.email)
    response = {"message": "If the email exists, reset instructions have been sent"}
    if token and settings.expose_reset_token:
        response["_dev_reset_token"] = token
    return response


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    auth_manager.reset_password(db, data.token, data.new_password)
    return {"message": "Password changed successfully"}


@router.get("/me")
async def me(principal: Principal = Depends(get_current_principal)):
    return {"user": principal.to_dict()}


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    auth_manager.change_password(db, principal, data.current_password, data.new_password)
    return {"message": "Password changed successfully"}

# ==================== USER MANAGEMENT ====================


@router.get("/users")
async def list_users(
    role: Optional[str] = Query(None),
    principal: Principal = Depends(require_operation(Operation.LIST_USERS)),
    db: Session = Depends(get_db),
):
    users = UserDirectory.list_users(db, principal, role)
    return [user.to_dict() for user in users]


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    data: CreateUserRequest,
    principal: Principal = Depends(require_operation(Operation.CREATE_USER)),
    db: Session = Depends(get_db),
):
    """Create a user with a given role. Managers can only create editors and clients."""
    validate_new_account(data.name, data.email, data.password)
    user = UserDirectory.create_user(
        db,
        principal,
        name=data.name,
        email=data.email,
        password_hash=auth_manager.hash_password(data.password),
        phone=data.phone,
        role=data.role,
    )
    return {"message": "User created successfully", "user": user.to_dict()}


@router.put("/users/{user_id}/role")
async def change_role(
    user_id: int,
    data: RoleChangeRequest,
    principal: Principal = Depends(require_operation(Operation.CHANGE_ROLE)),
    db: Session = Depends(get_db),
):
    user = UserDirectory.change_role(db, principal, user_id, data.role)
    return {"message": "Role changed successfully", "user": _public_user(user)}


@router.put("/users/{user_id}/status")
async def change_status(
    user_id: int,
    data: StatusChangeRequest,
    principal: Principal = Depends(require_operation(Operation.CHANGE_STATUS)),
    db: Session = Depends(get_db),
):
    user = UserDirectory.change_status(db, principal, user_id, data.is_active)
    return {
        "message": "User activated" if user.is_active else "User deactivated",
        "user": {**_public_user(user), "is_active": user.is_active},
    }


@router.put("/users/{user_id}/manager")
async def assign_manager(
    user_id: int,
    data: ManagerAssignmentRequest,
    principal: Principal = Depends(require_operation(Operation.REASSIGN_MANAGER)),
    db: Session = Depends(get_db),
):
    """Assign, change or clear (manager_id = null) a client's personal manager."""
    user = reassign_manager(db, user_id, data.manager_id)
    logger.info(f"Manager of user {user_id} set to {data.manager_id} by {principal.id}")
    return {
        "message": "Manager unassigned" if user.manager_id is None else "Manager assigned",
        "user": user.to_dict(),
    }


@router.put("/users/{user_id}/credits")
async def update_credits(
    user_id: int,
    data: CreditsRequest,
    principal: Principal = Depends(require_operation(Operation.SET_CREDITS)),
    db: Session = Depends(get_db),
):
    user = set_credits(db, user_id, data.credits)
    logger.info(f"Credits of user {user_id} set to {user.credits} by {principal.id}")
    return {"message": "Credits updated", "user": user.to_dict()}
