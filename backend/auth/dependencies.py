from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError
from sqlalchemy.exc import SQLAlchemyError

from backend.auth import jwt_handler
from backend.database import SessionLocal
from backend.models.user import User

security = HTTPBearer()

MANAGER_ROLE = "manager"
CUSTOMER_ROLE = "customer"


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="Database unavailable.") from exc
    finally:
        db.close()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_manager(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != MANAGER_ROLE:
        raise HTTPException(status_code=403, detail="Only managers can perform this action.")
    return current_user


def require_customer(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != CUSTOMER_ROLE:
        raise HTTPException(status_code=403, detail="Only customers can perform this action.")
    return current_user
