from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from passlib.context import CryptContext

from .models import User

# -----------------------------
# Password hashing helpers
# -----------------------------

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def hash_password(password: str) -> str:
    """Return a secure bcrypt hash of *password*."""
    return pwd_context.hash(password)

def verify_password(password: str, hashed: str) -> bool:
    """Verify *password* against *hashed* bcrypt digest."""
    return pwd_context.verify(password, hashed)

# -----------------------------
# FastAPI dependency helpers
# -----------------------------

security = HTTPBasic()

async def authenticate(email: str, password: str) -> Optional[User]:
    """Return the user owning *email* if *password* matches, else ``None``."""
    user: Optional[User] = await User.filter(email=email.lower()).first()
    if not user or not verify_password(password, user.password_hash):
        return None
    return user

async def get_current_user(credentials: HTTPBasicCredentials = Depends(security)) -> User:
    """Validate HTTP Basic credentials (email / password) and return the matching *User*.

    Raises
    ------
    HTTPException
        If the credentials are invalid.
    """
    user = await authenticate(credentials.username, credentials.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
    return user

__all__ = [
    "pwd_context",
    "hash_password",
    "verify_password",
    "security",
    "authenticate",
    "get_current_user",
]
