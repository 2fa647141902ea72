from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from taskboard.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from taskboard.database import get_session
from taskboard.models import User

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login")

credentials_exception = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Decodes a bearer token, raising 401 if it is malformed, forged or expired.
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise credentials_exception
    except jwt.InvalidTokenError:
        logger.info("Rejected invalid token")
        raise credentials_exception


def user_id_from_token(token: str) -> int:
    subject = verify_token(token).get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise credentials_exception


def issue_token_for(user: User) -> str:
    # PyJWT requires "sub" to be a string
    return create_access_token(data={"sub": str(user.id), "email": user.email})


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_session)) -> User:
    user = db.get(User, user_id_from_token(token))
    if user is None:
        raise credentials_exception
    return user
