from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address

from auth_utils import decode_user_id
from database import SessionLocal
from models import User
from notifier import Notifier, broker

# --- Database Dependency ---
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# --- Auth Dependency ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login")


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    user_id = decode_user_id(token)
    user = db.get(User, user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token", headers={"WWW-Authenticate": "Bearer"})
    return user

# --- Notifier Dependency ---
# main.py attaches the reminder scheduler on startup; tests override this dependency
notifier = Notifier(broker)


def get_notifier() -> Notifier:
    return notifier

# --- Rate Limiter ---
limiter = Limiter(key_func=get_remote_address)
