import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core import config
from backend.database import get_db
from backend.models.resource import Resource
from backend.models.user import User
from backend.stores import ResourceStore

security = HTTPBearer()

ADMIN_ROLES = {"admin"}


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")

    user = ResourceStore.get_user_by_email(db, email.strip().lower())
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def is_admin(user: User) -> bool:
    email = (user.email or "").strip().lower()
    return (user.role or "").lower() in ADMIN_ROLES or email.endswith(config.ADMIN_EMAIL_DOMAIN)


def can_manage_resource(user: User, resource: Resource | None) -> bool:
    """Platform administrators manage every resource; garage owners only their own."""
    if is_admin(user):
        return True
    return resource is not None and resource.owner_id is not None and resource.owner_id == user.id
