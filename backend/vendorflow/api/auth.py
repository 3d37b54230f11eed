import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from vendorflow.api.deps import get_current_planner, get_current_user, get_current_wedding
from vendorflow.core.config import get_settings
from vendorflow.core.db import get_session
from vendorflow.core.security import create_access_token, hash_password, new_invite_code, verify_password
from vendorflow.models.user import User, UserRole
from vendorflow.models.wedding import Wedding
from vendorflow.schemas.auth import (
    AuthResponse,
    InviteResponse,
    JoinRequest,
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
    WeddingMember,
    WeddingWorkspaceResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()
logger = logging.getLogger(__name__)


def _issue_token(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(
            str(user.id),
            wedding_id=str(user.wedding_id),
            role=user.role.value,
        )
    )


def _auth_response(user: User, wedding: Wedding) -> AuthResponse:
    return AuthResponse(
        token=_issue_token(user),
        user=UserResponse(
            id=str(user.id),
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            wedding_id=str(wedding.id),
            wedding_name=wedding.name,
        ),
    )


async def _wedding_for(session: AsyncSession, user: User) -> Wedding:
    wedding = await session.get(Wedding, user.wedding_id)
    if wedding is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wedding not found")
    return wedding


async def _unique_invite_code(session: AsyncSession) -> str:
    for _ in range(10):
        candidate = new_invite_code()
        taken = await session.execute(select(Wedding.id).where(Wedding.invite_code == candidate))
        if taken.scalar_one_or_none() is None:
            return candidate
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Unable to generate invite code. Try again.",
    )


async def _ensure_email_available(session: AsyncSession, email: str) -> None:
    existing = await session.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")


async def _authenticate(session: AsyncSession, email: str, password: str) -> User:
    result = await session.execute(select(User).where(User.email == email.lower().strip()))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user.last_login_at = datetime.now(UTC).replace(tzinfo=None)
    session.add(user)
    await session.commit()
    return user


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> AuthResponse:
    email = payload.email.lower().strip()
    await _ensure_email_available(session, email)

    wedding = Wedding(
        name=payload.wedding_name.strip(),
        invite_code=await _unique_invite_code(session),
        wedding_date=payload.wedding_date,
        default_currency=settings.default_vendor_currency.upper(),
        converted_currency=settings.default_converted_currency.upper(),
    )
    session.add(wedding)
    await session.flush()

    planner = User(
        email=email,
        hashed_password=hash_password(payload.password),
        full_name=payload.full_name.strip(),
        wedding_id=wedding.id,
        role=UserRole.PLANNER,
    )
    session.add(planner)
    await session.commit()
    await session.refresh(planner)
    await session.refresh(wedding)
    logger.info("Registered planner %s for wedding %s", planner.id, wedding.id)
    return _auth_response(planner, wedding)


@router.post("/join", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def join_wedding(
    payload: JoinRequest,
    session: AsyncSession = Depends(get_session),
) -> AuthResponse:
    email = payload.email.lower().strip()
    await _ensure_email_available(session, email)

    result = await session.execute(select(Wedding).where(Wedding.invite_code == payload.invite_code))
    wedding = result.scalar_one_or_none()
    if wedding is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid invite code")

    member = User(
        email=email,
        hashed_password=hash_password(payload.password),
        full_name=payload.full_name.strip(),
        wedding_id=wedding.id,
        role=UserRole.COUPLE,
    )
    session.add(member)
    await session.commit()
    await session.refresh(member)
    logger.info("User %s joined wedding %s", member.id, wedding.id)
    return _auth_response(member, wedding)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> AuthResponse:
    user = await _authenticate(session, payload.email, payload.password)
    return _auth_response(user, await _wedding_for(session, user))


@router.post("/token", response_model=TokenResponse)
async def token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    # OAuth2 password flow carries the email in the username field.
    user = await _authenticate(session, form_data.username, form_data.password)
    return _issue_token(user)


@router.get("/me", response_model=UserResponse)
async def me(
    current_user: User = Depends(get_current_user),
    wedding: Wedding = Depends(get_current_wedding),
) -> UserResponse:
    return _auth_response(current_user, wedding).user


@router.post("/invite", response_model=InviteResponse)
async def rotate_invite_code(
    _: User = Depends(get_current_planner),
    wedding: Wedding = Depends(get_current_wedding),
    session: AsyncSession = Depends(get_session),
) -> InviteResponse:
    wedding.invite_code = await _unique_invite_code(session)
    session.add(wedding)
    await session.commit()
    return InviteResponse(
        invite_code=wedding.invite_code,
        message="Share this code with the couple so they can join the wedding workspace.",
    )


@router.get("/wedding", response_model=WeddingWorkspaceResponse)
async def wedding_workspace(
    current_user: User = Depends(get_current_user),
    wedding: Wedding = Depends(get_current_wedding),
    session: AsyncSession = Depends(get_session),
) -> WeddingWorkspaceResponse:
    result = await session.execute(
        select(User)
        .where(User.wedding_id == wedding.id, User.is_active.is_(True))
        .order_by(User.created_at)
    )
    return WeddingWorkspaceResponse(
        wedding_id=str(wedding.id),
        name=wedding.name,
        wedding_date=wedding.wedding_date,
        invite_code=wedding.invite_code if current_user.is_planner else None,
        members=[
            WeddingMember(id=str(user.id), full_name=user.full_name, email=user.email, role=user.role)
            for user in result.scalars().all()
        ],
    )
