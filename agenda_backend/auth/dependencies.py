import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from agenda_backend.auth import jwt_handler
from agenda_backend.auth.roles import Role, has_role
from agenda_backend.core.errors import AuthorizationError
from agenda_backend.database import get_db
from agenda_backend.models.user import User

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_professional(user: User = Depends(get_current_user)) -> User:
    if not has_role(user, Role.PROFESSIONAL):
        raise AuthorizationError("Only professionals can use the agenda.")
    return user
