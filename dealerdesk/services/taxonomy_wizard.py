"""Step-by-step vehicle selection for valuations.

The state is a plain model sent back and forth by the client; every
transition returns a new state and the server keeps nothing between calls.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from dealerdesk.core import models
from dealerdesk.services import registration_dates
from dealerdesk.services.taxonomy import MAX_DERIVATIVES, TaxonomyClient

logger = logging.getLogger(__name__)

STEP_ORDER: tuple[str, ...] = (
    "vehicle_type",
    "make",
    "model",
    "generation",
    "trim",
    "engine_size",
    "fuel_type",
    "derivative",
    "year",
    "plate",
    "mileage",
    "complete",
)
UNKNOWN_INTRODUCTION_YEAR = 2000

# wizard step -> derivative facet parameter
_FACET_FOR_STEP = {"trim": "trim", "engine_size": "badgeEngineSize", "fuel_type": "fuelType"}


def _facet_filters(selections: dict[str, models.TaxonomyOption]) -> dict[str, str]:
    return {
        param: selections[step].name
        for step, param in _FACET_FOR_STEP.items()
        if step in selections
    }


def year_options(derivative: models.TaxonomyOption, *, today: Optional[date] = None) -> list[models.TaxonomyOption]:
    """Years of production, newest first."""

    today = today or date.today()
    first = derivative.introduced.year if derivative.introduced else UNKNOWN_INTRODUCTION_YEAR
    last = derivative.discontinued.year if derivative.discontinued else today.year
    last = max(first, last)
    return [models.TaxonomyOption(id=str(year), name=str(year)) for year in range(last, first - 1, -1)]


def plate_options(year: int) -> list[models.TaxonomyOption]:
    return [models.TaxonomyOption(id=plate, name=plate) for plate in registration_dates.plates_for_year(year)]


def _find_option(state: models.WizardState, value: str) -> models.TaxonomyOption:
    wanted = value.strip()
    for option in state.options:
        if option.id == wanted:
            return option
    for option in state.options:
        if option.name.lower() == wanted.lower():
            return option
    raise ValueError(f"'{value}' is not a valid choice for {state.step}")


class TaxonomyWizard:
    def __init__(self, client: TaxonomyClient, *, today: Optional[date] = None) -> None:
        self.client = client
        self.today = today

    async def start(self) -> models.WizardState:
        options = await self.client.options("vehicleTypes")
        return models.WizardState(step="vehicle_type", options=options)

    async def select(self, state: models.WizardState, value: str) -> models.WizardState:
        if state.step == "complete":
            raise ValueError("The wizard is already complete")

        frame = models.WizardFrame(step=state.step, options=state.options, candidates=state.candidates)
        history = [*state.history, frame]

        if state.step == "mileage":
            try:
                mileage = int(str(value).replace(",", "").strip())
            except ValueError as exc:
                raise ValueError("Mileage must be a whole number") from exc
            if mileage < 0:
                raise ValueError("Mileage cannot be negative")
            return state.model_copy(
                update={"step": "complete", "options": [], "history": history, "mileage": mileage}
            )

        option = _find_option(state, value)
        selections = {**state.selections, state.step: option}
        step, options, candidates = await self._advance(state.step, selections, state.candidates)
        logger.debug("Wizard %s=%s -> %s (%d options)", state.step, option.name, step, len(options))
        return models.WizardState(
            step=step,
            options=options,
            selections=selections,
            candidates=candidates,
            history=history,
            mileage=state.mileage,
        )

    def back(self, state: models.WizardState) -> models.WizardState:
        """Re-open the previous step, dropping its selection and everything after it."""

        if not state.history:
            raise ValueError("Already at the first step")
        frame = state.history[-1]
        cutoff = STEP_ORDER.index(frame.step)
        cleared = set(STEP_ORDER[cutoff:])
        selections = {step: option for step, option in state.selections.items() if step not in cleared}
        return models.WizardState(
            step=frame.step,
            options=frame.options,
            selections=selections,
            candidates=frame.candidates,
            history=state.history[:-1],
            mileage=None if "mileage" in cleared else state.mileage,
        )

    async def _derivatives(self, selections: dict[str, models.TaxonomyOption]) -> list[models.TaxonomyOption]:
        return await self.client.get_derivatives(selections["generation"].id, **_facet_filters(selections))

    async def _facet(self, taxonomy_type: str, selections: dict[str, models.TaxonomyOption]) -> list[models.TaxonomyOption]:
        return await self.client.options(
            taxonomy_type,
            generationId=selections["generation"].id,
            vehicleType=selections["vehicle_type"].name,
            **_facet_filters(selections),
        )

    async def _advance(
        self,
        step: str,
        selections: dict[str, models.TaxonomyOption],
        candidates: list[models.TaxonomyOption],
    ) -> tuple[str, list[models.TaxonomyOption], list[models.TaxonomyOption]]:
        if step == "vehicle_type":
            makes = await self.client.options("makes", vehicleType=selections["vehicle_type"].name)
            return "make", makes, []
        if step == "make":
            found = await self.client.options(
                "models",
                makeId=selections["make"].id,
                vehicleType=selections["vehicle_type"].name,
            )
            return "model", found, []
        if step == "model":
            return "generation", await self.client.options("generations", modelId=selections["model"].id), []

        if step in ("generation", "trim", "engine_size", "fuel_type"):
            derivatives = await self._derivatives(selections)
            if step == "fuel_type" or len(derivatives) <= MAX_DERIVATIVES:
                return "derivative", derivatives, derivatives
            # remaining narrowing steps after the one just taken
            remaining = {
                "generation": (("trim", "trims"), ("engine_size", "badgeEngineSizes")),
                "trim": (("engine_size", "badgeEngineSizes"),),
                "engine_size": (("fuel_type", "fuelTypes"),),
            }[step]
            for next_step, taxonomy_type in remaining:
                facets = await self._facet(taxonomy_type, selections)
                if facets:
                    return next_step, facets, derivatives
            return "derivative", derivatives, derivatives

        if step == "derivative":
            return "year", year_options(selections["derivative"], today=self.today), candidates
        if step == "year":
            plates = plate_options(int(selections["year"].id))
            if plates:
                return "plate", plates, candidates
            return "mileage", [], candidates
        if step == "plate":
            return "mileage", [], candidates
        raise ValueError(f"Unknown wizard step: {step}")


def valuation_params(state: models.WizardState, *, today: Optional[date] = None) -> models.ValuationParams:
    """Valuation parameters of a completed wizard, with an estimated first registration date."""

    if state.step != "complete" or state.mileage is None:
        raise ValueError("The wizard is not complete")
    selections = state.selections
    missing = [step for step in ("vehicle_type", "make", "model", "generation", "derivative", "year") if step not in selections]
    if missing:
        raise ValueError(f"Missing selections: {', '.join(missing)}")

    derivative = selections["derivative"]
    year = int(selections["year"].id)
    plate = selections["plate"].name if "plate" in selections else None
    introduced = derivative.introduced or date(year, 1, 1)
    estimate = registration_dates.calculate_registration_date(
        plate,
        introduced,
        derivative.discontinued,
        today=today,
    )
    return models.ValuationParams(
        vehicle_type=selections["vehicle_type"].name,
        make=selections["make"].name,
        make_id=selections["make"].id,
        model=selections["model"].name,
        model_id=selections["model"].id,
        generation=selections["generation"].name,
        generation_id=selections["generation"].id,
        derivative=derivative.name,
        derivative_id=derivative.id,
        year=year,
        plate=plate,
        mileage=state.mileage,
        first_registration_date=estimate.first_registration_date,
        registration_method=estimate.method,
    )
