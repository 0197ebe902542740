"""Vehicle taxonomy proxy and valuation wizard routes."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from dealerdesk.api.auth import get_current_user
from dealerdesk.core import models
from dealerdesk.services import taxonomy_wizard
from dealerdesk.services.taxonomy import QUERY_PARAMS, TaxonomyClient, TaxonomyError, get_taxonomy_client

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_current_user)])


def _query_filters(request: Request, *exclude: str) -> dict[str, str]:
    return {
        key: value
        for key, value in request.query_params.items()
        if key in QUERY_PARAMS and key not in exclude
    }


def _upstream_error(exc: TaxonomyError) -> HTTPException:
    logger.error("Taxonomy API failure: %s", exc)
    return HTTPException(status_code=502, detail=str(exc))


@router.get("", response_model=list[models.TaxonomyOption])
async def fetch_taxonomy(
    request: Request,
    taxonomy_type: str = Query(..., alias="type"),
    client: TaxonomyClient = Depends(get_taxonomy_client),
) -> list[models.TaxonomyOption]:
    params = _query_filters(request)
    try:
        return await client.options(taxonomy_type, **params)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TaxonomyError as exc:
        raise _upstream_error(exc) from exc


@router.get("/derivatives/filtered", response_model=models.FilteredDerivatives)
async def filtered_derivatives(
    request: Request,
    generation_id: str = Query(..., alias="generationId"),
    client: TaxonomyClient = Depends(get_taxonomy_client),
) -> models.FilteredDerivatives:
    filters = _query_filters(request, "generationId")
    try:
        return await client.get_filtered_derivatives(generation_id, **filters)
    except TaxonomyError as exc:
        raise _upstream_error(exc) from exc


@router.post("/wizard/start", response_model=models.WizardState)
async def wizard_start(client: TaxonomyClient = Depends(get_taxonomy_client)) -> models.WizardState:
    try:
        return await taxonomy_wizard.TaxonomyWizard(client).start()
    except TaxonomyError as exc:
        raise _upstream_error(exc) from exc


@router.post("/wizard/select", response_model=models.WizardState)
async def wizard_select(
    payload: models.WizardSelectRequest, client: TaxonomyClient = Depends(get_taxonomy_client)
) -> models.WizardState:
    try:
        return await taxonomy_wizard.TaxonomyWizard(client).select(payload.state, payload.value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TaxonomyError as exc:
        raise _upstream_error(exc) from exc


@router.post("/wizard/back", response_model=models.WizardState)
async def wizard_back(
    payload: models.WizardStateRequest, client: TaxonomyClient = Depends(get_taxonomy_client)
) -> models.WizardState:
    try:
        return taxonomy_wizard.TaxonomyWizard(client).back(payload.state)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/wizard/valuation", response_model=models.ValuationParams)
async def wizard_valuation(payload: models.WizardStateRequest) -> models.ValuationParams:
    try:
        return taxonomy_wizard.valuation_params(payload.state)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
