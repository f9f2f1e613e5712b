from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from hiretrack.config import get_settings
from hiretrack.services.lifecycle import ActorRole

ALGORITHM = "HS256"
TOKEN_EXPIRE_DAYS = 30


@dataclass(frozen=True)
class Actor:
    id: str
    role: ActorRole


def create_access_token(actor_id: str, role: str, expires_days: int = TOKEN_EXPIRE_DAYS) -> str:
    """Issue a bearer token. Login flows live in the external auth system."""
    expire = datetime.now(timezone.utc) + timedelta(days=expires_days)
    to_encode = {"sub": actor_id, "role": ActorRole(role).value, "exp": expire}
    return jwt.encode(to_encode, get_settings().secret_key, algorithm=ALGORITHM)


def verify_access_token(token: str) -> Optional[Actor]:
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])
        return Actor(id=payload["sub"], role=ActorRole(payload["role"]))
    except (JWTError, KeyError, ValueError):
        return None


async def get_current_actor(request: Request) -> Actor:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    actor = verify_access_token(token) if scheme.lower() == "bearer" and token else None
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def require_role(actor: Actor, *roles: ActorRole) -> None:
    if actor.role not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires role: {', '.join(r.value for r in roles)}",
        )
