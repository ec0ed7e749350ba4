import logging
from datetime import datetime, timedelta, timezone
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel, ValidationError
from app.core.config import settings
from app.core.errors import AuthenticationError

logger = logging.getLogger(__name__)

http_bearer = HTTPBearer(auto_error=False)

class SessionUser(BaseModel):
    id: str  # users.id
    practitioner_id: str
    practitioner_name: str | None = None
    patient_id: str | None = None
    patient_name: str | None = None
    fhir_base_url: str
    access_token: str

def encode_session(user: SessionUser, expires_in: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expires = now + (expires_in or timedelta(minutes=settings.SESSION_TTL_MINUTES))
    claims = user.model_dump()
    claims.update({"sub": user.practitioner_id, "iat": now, "exp": expires})
    return jwt.encode(claims, settings.SESSION_SECRET, algorithm=settings.SESSION_ALG)

def decode_session(token: str | None) -> SessionUser | None:
    """Verify a session token. Bad signature, expiry or shape all yield None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SESSION_SECRET, algorithms=[settings.SESSION_ALG])
    except JWTError as e:
        logger.info(f"Rejected session token: {e}")
        return None
    try:
        return SessionUser.model_validate(payload)
    except ValidationError:
        logger.info("Rejected session token: payload is not a session user")
        return None

def resolve_current_user(request: Request, creds: HTTPAuthorizationCredentials | None = None) -> SessionUser | None:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token and creds is not None:
        token = creds.credentials
    return decode_session(token)

async def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(http_bearer),
) -> SessionUser | None:
    return resolve_current_user(request, creds)

async def require_user(user: SessionUser | None = Depends(get_current_user)) -> SessionUser:
    if user is None or not user.practitioner_id:
        raise AuthenticationError("Not authenticated")
    return user
