from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.config import settings
from app.core.security import create_access_token, get_password_hash, verify_password

from app.api.deps import get_current_user
from app.models.user import User, UserRole
from app.schemas.user import UserCreate, StaffCreate, Token, User as UserSchema

router = APIRouter(prefix="/auth", tags=["auth"])

STAFF_ROLES = {UserRole.ADMIN, UserRole.MDRR_STAFF, UserRole.PAYMENT_COLLECTOR}


def _build_token_response(user: User) -> Token:
    access_token = create_access_token(subject=str(user.id), role=UserRole(user.role).value)
    return Token(
        access_token=access_token,
        token_type="bearer",
        user=UserSchema.model_validate(user),
    )


def _create_user(db: Session, body: UserCreate, role: UserRole) -> User:
    if db.query(User).filter(User.email == body.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )
    user = User(
        email=body.email,
        password_hash=get_password_hash(body.password),
        full_name=body.full_name,
        phone=body.phone,
        avatar_url=body.avatar_url,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(body: UserCreate, db: Session = Depends(get_db)):
    user = _create_user(db, body, UserRole.END_USER)
    return _build_token_response(user)


@router.post("/staff/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def staff_register(body: StaffCreate, db: Session = Depends(get_db)):
    """Register an admin, MDRR staff or payment collector account."""
    if body.admin_secret != settings.ADMIN_SECRET_KEY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin secret",
        )
    if body.role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Role must be one of: {', '.join(sorted(r.value for r in STAFF_ROLES))}",
        )
    user = _create_user(db, body, body.role)
    return _build_token_response(user)


@router.post("/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == form_data.username).first()
    if not user or not verify_password(form_data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return _build_token_response(user)


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(current_user: User = Depends(get_current_user)):
    """
    Stateless JWTs: the client discards the token. Kept so clients have a
    single place to hook token blacklisting later.
    """
    return {"message": "Successfully logged out"}
