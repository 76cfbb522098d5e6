import hmac
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

load_dotenv(Path(__file__).parent.parent / ".env")

SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

# Accept USERNAME/PASSWORD or ADMIN_* (either works)
ADMIN_USERNAME = (os.getenv("ADMIN_USERNAME") or os.getenv("USERNAME") or "").strip()
ADMIN_PASSWORD = (os.getenv("ADMIN_PASSWORD") or os.getenv("PASSWORD") or "").strip()

if not SECRET_KEY:
    raise RuntimeError("SECRET_KEY is not set")
if not ADMIN_USERNAME or not ADMIN_PASSWORD:
    raise RuntimeError("Set USERNAME/PASSWORD (or ADMIN_USERNAME/ADMIN_PASSWORD) in .env")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login", auto_error=False)

def authenticate_user(username: str, password: str) -> bool:
    return hmac.compare_digest(username or "", ADMIN_USERNAME) and \
           hmac.compare_digest(password or "", ADMIN_PASSWORD)

def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def decode_subject(token: str | None) -> str | None:
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")

def get_current_user(request: Request, token: str | None = Depends(oauth2_scheme)) -> str:
    """Owner id of the caller, from the bearer token or the login cookie."""
    owner_id = decode_subject(token or request.cookies.get("access_token"))
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return owner_id
