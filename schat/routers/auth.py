from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ..auth_utils import authenticate, get_current_user
from ..gateway import TortoiseGateway
from ..models import User
from ..schemas import AuthResponse, LoginRequest, SignupRequest, UserPublic
from ..state import get_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(req: SignupRequest, gateway: TortoiseGateway = Depends(get_gateway)):
    if await gateway.get_user_by_email(req.email):
        raise HTTPException(
            status_code=400,
            detail="This email is already registered. Please sign in or use a different email.",
        )
    user = await gateway.create_user(req.username, req.email, req.password)
    return AuthResponse(
        message="Account created successfully. Please sign in to continue.",
        user=UserPublic.model_validate(user),
    )


@router.post("/login", response_model=AuthResponse)
async def login(req: LoginRequest, gateway: TortoiseGateway = Depends(get_gateway)):
    user = await authenticate(req.email, req.password)
    if user is None:
        raise HTTPException(status_code=400, detail="Invalid email or password")
    await gateway.update_user_online_status(str(user.id), True)
    await user.refresh_from_db()
    logger.info("user %s logged in", user.id)
    return AuthResponse(message="Login successful", user=UserPublic.model_validate(user))


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
):
    await gateway.update_user_online_status(str(current_user.id), False)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserPublic)
async def me(current_user: User = Depends(get_current_user)):
    return UserPublic.model_validate(current_user)
