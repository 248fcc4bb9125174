from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..auth_utils import get_current_user
from ..gateway import TortoiseGateway
from ..models import User
from ..schemas import UpdateProfileRequest, UserPublic
from ..state import get_gateway

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/search", response_model=List[UserPublic])
async def search_users(
    query: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
):
    if not query or not query.strip():
        raise HTTPException(status_code=400, detail="Please provide a valid search query")
    users = await gateway.search_users(query, exclude_user_id=str(current_user.id))
    return [UserPublic.model_validate(u) for u in users]


@router.patch("/profile", response_model=UserPublic)
async def update_profile(
    req: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    gateway: TortoiseGateway = Depends(get_gateway),
):
    updates = req.model_dump(exclude_unset=True, exclude_none=True)
    user = await gateway.update_user_profile(current_user, updates)
    return UserPublic.model_validate(user)
