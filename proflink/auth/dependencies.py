from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from proflink.auth import jwt_handler
from proflink.database import get_db
from proflink.models.user import User

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

ROLES = ("student", "faculty")


def resolve_session_user(token: str, db: Session) -> User:
    try:
        payload = jwt_handler.decode_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    uid = payload.get("sub")
    if not uid:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.uid == uid).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    # Logout bumps the version; a role change in the record ends the session too.
    if payload.get("ver") != user.session_version or payload.get("role") != user.role:
        raise HTTPException(status_code=401, detail="Session expired. Please log in again.")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    return resolve_session_user(credentials.credentials, db)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
    db: Session = Depends(get_db),
) -> User | None:
    if credentials is None:
        return None
    try:
        return resolve_session_user(credentials.credentials, db)
    except HTTPException:
        return None


def require_role(role: str):
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            raise HTTPException(
                status_code=403,
                detail=f"This page is only available to {role} accounts.",
            )
        return current_user

    return dependency


require_student = require_role("student")
require_faculty = require_role("faculty")
