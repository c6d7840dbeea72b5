"""
Principal resolution from bearer tokens.

Login and token issuance live in the surrounding platform; this service only
verifies the token and resolves the caller's role onto one side of the deal.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from gigflow.core.config import get_settings
from gigflow.core.errors import NotAParty
from gigflow.engine.parties import Party

settings = get_settings()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

ARTIST_ROLES = {"artist", "band_manager"}
PROMOTER_ROLES = {"promoter", "organizer", "venue", "venue_manager"}
ADMIN_ROLES = {"admin", "platform_admin"}


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str  # artist, promoter, admin

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def party(self) -> Party:
        if self.role == "artist":
            return Party.ARTIST
        if self.role == "promoter":
            return Party.PROMOTER
        raise NotAParty("Only the artist or the promoter can act on a booking")


def resolve_role(raw_role: Optional[str]) -> str:
    """Collapse platform roles onto the two contract sides (plus admin)."""
    role = (raw_role or "").lower()
    if role in ARTIST_ROLES:
        return "artist"
    if role in ADMIN_ROLES:
        return "admin"
    if role in PROMOTER_ROLES:
        return "promoter"
    raise ValueError(f"Unknown role: {raw_role!r}")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return Principal(user_id=int(payload["sub"]), role=resolve_role(payload.get("role")))
    except (JWTError, KeyError, ValueError, TypeError):
        raise credentials_exception


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return principal
