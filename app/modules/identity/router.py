from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import settings
from app.core.db import get_session
from app.core.errors import AuthenticationError
from app.core.security import SessionUser, encode_session, get_current_user
from app.modules.identity.service import IdentityService
from app.modules.identity.schemas import FhirUserData, SessionOut, MeOut

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> IdentityService: return IdentityService(s)

@router.post("/auth/session", response_model=SessionOut)
async def create_session(payload: FhirUserData, response: Response, service: IdentityService = Depends(svc)):
    user = await service.create_or_update_user(payload)
    token = encode_session(user)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME, token,
        max_age=settings.SESSION_TTL_MINUTES * 60,
        httponly=True, secure=settings.ENV == "prod", samesite="lax",
    )
    return SessionOut(user=user)

@router.get("/auth/session", response_model=SessionOut)
async def read_session(user: SessionUser | None = Depends(get_current_user)):
    if user is None:
        return JSONResponse(status_code=401, content={"user": None})
    return SessionOut(user=user)

@router.delete("/auth/session", status_code=204)
async def delete_session(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return None

@router.get("/auth/me", response_model=MeOut)
async def me(user: SessionUser | None = Depends(get_current_user)):
    if user is None:
        raise AuthenticationError("Not authenticated")
    # everything except the bearer token
    return MeOut(**user.model_dump(exclude={"access_token"}))
