"""
Password hashing, access tokens and random codes
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, BCRYPT_ROUNDS, JWT_ALGORITHM, SECRET_KEY

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError as e:
        logger.warning(f"⚠️ Malformed password hash: {e}")
        return False


def create_access_token(user_id: int, instance_id: Optional[int] = None) -> str:
    """Issue a signed access token for a user"""
    now = datetime.utcnow()
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    if instance_id is not None:
        payload["instance_id"] = instance_id
    return jwt.encode(payload, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the token claims, or None when the token is invalid or expired"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Token rejected: {e}")
        return None


def generate_confirmation_code() -> str:
    """7-digit reservation confirmation code"""
    return "".join(secrets.choice("0123456789") for _ in range(7))


def generate_verification_code() -> str:
    """4-digit SMS verification code"""
    return str(1000 + secrets.randbelow(9000))
