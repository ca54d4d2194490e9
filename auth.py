import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db, User, Expense, Income
from schemas import (
    UserSignup,
    UserLogin,
    UserProfile,
    LoginResponse,
    UserSummary,
    SystemStats,
    Message,
)

SECRET_KEY = os.environ.get("SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

logger = logging.getLogger(__name__)

user_router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login")


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def role_for_email(email: str) -> str:
    return "ADMIN" if "admin" in email.lower() else "USER"


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        email = payload.get("sub")
        if email is None:
            raise credentials_exception
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise credentials_exception

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise credentials_exception
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "ADMIN":
        logger.warning("Non-admin %s tried to reach an admin endpoint", current_user.email)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: Admin access required",
        )
    return current_user


def _profile(user: User, name: Optional[str] = None) -> dict:
    # username doubles as the display name
    return {
        "id": str(user.id),
        "email": user.email,
        "name": name or user.username,
        "role": user.role,
    }


@user_router.post("/signup", response_model=UserProfile)
def signup(user: UserSignup, db: Session = Depends(get_db)):
    if db.query(User).filter(User.email == user.email).first():
        logger.warning("Email already exists: %s", user.email)
        raise HTTPException(status_code=400, detail="Email already exists")

    new_user = User(
        username=user.email,
        email=user.email,
        password_hash=hash_password(user.password),
        role=role_for_email(user.email),
    )
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Signup lost a race for email: %s", user.email)
        raise HTTPException(status_code=400, detail="Email already exists")
    db.refresh(new_user)
    logger.info("Created user %s with role %s", new_user.email, new_user.role)
    return _profile(new_user, user.name)


@user_router.post("/login", response_model=LoginResponse)
def login(user: UserLogin, db: Session = Depends(get_db)):
    db_user = db.query(User).filter(User.email == user.email).first()
    if not db_user or not verify_password(user.password, db_user.password_hash):
        logger.warning("Login failed for user: %s", user.email)
        raise HTTPException(status_code=400, detail="Invalid credentials")

    access_token = create_access_token(data={"sub": db_user.email})
    return {**_profile(db_user), "access_token": access_token, "token_type": "bearer"}


@user_router.get("/admin/users", response_model=list[UserSummary])
def get_all_users(
    db: Session = Depends(get_db), admin: User = Depends(require_admin)
):
    expense_counts = dict(
        db.query(Expense.user_id, func.count(Expense.id)).group_by(Expense.user_id).all()
    )
    income_counts = dict(
        db.query(Income.user_id, func.count(Income.id)).group_by(Income.user_id).all()
    )
    return [
        {
            "id": str(u.id),
            "email": u.email,
            "username": u.username,
            "role": u.role,
            "expenseCount": expense_counts.get(u.id, 0),
            "incomeCount": income_counts.get(u.id, 0),
        }
        for u in db.query(User).order_by(User.id).all()
    ]


@user_router.get("/admin/stats", response_model=SystemStats)
def get_system_stats(
    db: Session = Depends(get_db), admin: User = Depends(require_admin)
):
    active_users = (
        db.query(func.count(User.id))
        .filter(or_(User.expenses.any(), User.incomes.any()))
        .scalar()
    )
    return {
        "totalUsers": db.query(func.count(User.id)).scalar(),
        "totalExpenses": db.query(func.count(Expense.id)).scalar(),
        "totalIncomes": db.query(func.count(Income.id)).scalar(),
        "activeUsers": active_users,
    }


@user_router.delete("/admin/delete/{user_id}", response_model=Message)
def delete_user(
    user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)
):
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    db.delete(user)
    db.commit()
    logger.info("Admin %s deleted user %s", admin.email, user_id)
    return {"message": "User deleted successfully"}


@user_router.get("/{email}", response_model=UserProfile)
def get_user_details(email: str, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _profile(user)
