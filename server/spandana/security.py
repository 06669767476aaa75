"""
Identity and role checks.

Bearer tokens are signed by the auth provider with the shared secret; this
module only verifies them and resolves the caller's role.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from spandana.config import settings
from spandana.database import get_db
from spandana.models import Participant, UserProfile, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    user_id: str
    role: UserRole
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def create_access_token(
    user_id: str,
    role: Optional[str] = None,
    name: Optional[str] = None,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed access token (used by the provider bridge and by tests)"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {"sub": user_id, "exp": expire}
    if role:
        payload["role"] = role
    if name:
        payload["name"] = name
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Session expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Unauthorized")


def resolve_role(db: Session, user_id: str, claimed_role: Optional[str] = None) -> UserRole:
    """
    user_profiles is the primary source; the token's role claim is the
    fallback for users without a profile row. Anything else is a participant.
    """
    profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
    if profile:
        return UserRole(profile.role)
    if claimed_role == UserRole.ADMIN.value:
        return UserRole.ADMIN
    return UserRole.PARTICIPANT


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    return CurrentUser(
        user_id=user_id,
        role=resolve_role(db, user_id, payload.get("role")),
        name=payload.get("name"),
        email=payload.get("email"),
    )


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def get_current_participant(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Participant:
    participant = db.query(Participant).filter(Participant.user_id == user.user_id).first()
    if not participant:
        raise HTTPException(status_code=404, detail="Participant profile not found")
    return participant
