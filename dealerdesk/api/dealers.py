"""Dealer profile routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from dealerdesk.api.auth import get_current_user
from dealerdesk.core import models, services

router = APIRouter()


def require_dealer(user: models.User = Depends(get_current_user)) -> models.Dealer:
    dealer = services.get_dealer_for_user(user)
    if dealer is None:
        raise HTTPException(status_code=404, detail="Dealer not found")
    return dealer


@router.get("/me", response_model=models.Dealer)
async def read_dealer(dealer: models.Dealer = Depends(require_dealer)) -> models.Dealer:
    return dealer


@router.put("/me", response_model=models.Dealer)
async def update_dealer(
    payload: models.DealerUpdate, dealer: models.Dealer = Depends(require_dealer)
) -> models.Dealer:
    try:
        return services.update_dealer(dealer.id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
