"""Authentication routes."""
from __future__ import annotations

from typing import Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from dealerdesk.core import models, security, services

router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def _user_from_token(token: str) -> models.User:
    try:
        payload = security.decode_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    if payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    username = payload.get("sub")
    if not username:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    user = services.get_user(username)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_user(token: str = Depends(oauth2_scheme)) -> models.User:
    return _user_from_token(token)


def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme)) -> Optional[models.User]:
    """Like ``get_current_user`` but returns ``None`` instead of failing."""

    if not token:
        return None
    try:
        return _user_from_token(token)
    except HTTPException:
        return None


def _issue_tokens(user: models.User) -> models.Token:
    token_data = {"role": user.role}
    access_token = security.create_access_token(user.username, token_data)
    refresh_token = security.create_refresh_token(user.username, token_data)
    return models.Token(access_token=access_token, refresh_token=refresh_token)


@router.post("/login", response_model=models.Token)
async def login(credentials: models.LoginRequest) -> models.Token:
    user = services.authenticate(credentials.username, credentials.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _issue_tokens(user)


@router.post("/refresh", response_model=models.Token)
async def refresh(request: models.RefreshRequest) -> models.Token:
    try:
        payload = security.decode_token(request.refresh_token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    username = payload.get("sub")
    user = services.get_user(username) if username else None
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return _issue_tokens(user)


@router.get("/me", response_model=models.User)
async def me(current_user: models.User = Depends(get_current_user)) -> models.User:
    return current_user
