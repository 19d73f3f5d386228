from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from auth_utils import hash_password, verify_password, create_access_token
from config import LOGIN_RATE_LIMIT
from dependencies import get_db, limiter
from models import User

router = APIRouter(tags=["auth"])


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=72)


class UserLogin(BaseModel):
    email: str
    password: str


@router.post("/register")
def register(user: UserCreate, db: Session = Depends(get_db)):
    """
    Registriert einen neuen Benutzer im System.

    Prüft, ob die E-Mail bereits existiert und speichert das Passwort sicher gehasht (bcrypt).

    Args:
        user (UserCreate): Name, E-Mail und Klartext-Passwort.
        db (Session): Datenbank-Session.

    Returns:
        dict: Erfolgsmeldung und die neue Benutzer-ID.

    Raises:
        HTTPException(400): Wenn die E-Mail bereits vergeben ist.
    """
    email = user.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    db_user = User(name=user.name.strip(), email=email, hashed_password=hash_password(user.password))
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return {"msg": "Registration successful", "id": db_user.id}


@router.post("/login")
@limiter.limit(LOGIN_RATE_LIMIT)  # Brute-Force-Schutz
def login(request: Request, user: UserLogin, db: Session = Depends(get_db)):
    """
    Authentifiziert einen Benutzer und stellt ein JWT Access Token aus.

    Rate Limiting über `slowapi` (Standard: 10 Versuche/Min pro IP).

    Raises:
        HTTPException(401): Bei falscher E-Mail oder falschem Passwort.
    """
    db_user = db.query(User).filter(User.email == user.email.strip().lower()).first()

    if not db_user or not verify_password(user.password, db_user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token(db_user.id, db_user.email)
    return {"access_token": token, "token_type": "bearer"}
