"""Client for the vehicle taxonomy API used by valuations."""
from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Callable

import httpx

from dealerdesk.core import models
from dealerdesk.core.config import settings

logger = logging.getLogger(__name__)

MAX_DERIVATIVES = 8
DEFAULT_TOKEN_TTL_SECONDS = 900
TOKEN_REFRESH_MARGIN_SECONDS = 60

# taxonomy type -> required query parameter
TAXONOMY_TYPES: dict[str, str | None] = {
    "vehicleTypes": None,
    "makes": None,
    "models": "makeId",
    "generations": "modelId",
    "derivatives": "generationId",
    "trims": "generationId",
    "badgeEngineSizes": "generationId",
    "doors": "generationId",
    "drivetrains": "generationId",
    "bodyTypes": None,
    "fuelTypes": None,
    "transmissionTypes": None,
}
FACET_PARAMS = ("trim", "badgeEngineSize", "fuelType", "transmission", "doors", "drivetrain", "bodyType")
QUERY_PARAMS = ("vehicleType", "makeId", "modelId", "generationId") + FACET_PARAMS
# taxonomy type -> identifier field of its records; facet types are keyed by name
ID_FIELDS = {
    "makes": "makeId",
    "models": "modelId",
    "generations": "generationId",
    "derivatives": "derivativeId",
}
_VEHICLE_TYPE_SCOPED = {"makes", "models", "bodyTypes", "fuelTypes", "transmissionTypes"}


class TaxonomyError(RuntimeError):
    """Base error for taxonomy API failures."""


class TaxonomyAuthError(TaxonomyError):
    """Raised when the API credentials are missing or rejected."""


class TaxonomyRequestError(TaxonomyError):
    """Raised when a taxonomy request fails."""


def _parse_day(value: Any) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def to_option(item: dict[str, Any], id_field: str | None = None) -> models.TaxonomyOption:
    """Normalise a taxonomy record. Records without ``id_field`` are identified by name."""

    name = str(item.get("name") or "")
    identifier = str(item.get(id_field) or "") if id_field else ""
    identifier = identifier or name
    return models.TaxonomyOption(
        id=identifier,
        name=name or identifier,
        introduced=_parse_day(item.get("introduced")),
        discontinued=_parse_day(item.get("discontinued")),
    )


def _clean_params(params: dict[str, Any]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        text = str(value).strip()
        if not text or text.lower() == "any":
            continue
        cleaned[key] = text
    return cleaned


class TaxonomyClient:
    def __init__(
        self,
        base_url: str,
        key: str,
        secret: str,
        advertiser_id: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.key = key
        self.secret = secret
        self.advertiser_id = advertiser_id
        self._transport = transport
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(15.0, connect=5.0),
            transport=self._transport,
        )

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    async def authenticate(self) -> str:
        """Return a cached access token, requesting a new one close to expiry."""

        if self._token and self._clock() < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._token
        if not self.key or not self.secret:
            raise TaxonomyAuthError("Taxonomy API credentials are not configured")
        try:
            async with self._client() as client:
                response = await client.post("/authenticate", json={"key": self.key, "secret": self.secret})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TaxonomyAuthError(f"Token request failed: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise TaxonomyAuthError("Taxonomy API unreachable") from exc

        payload = response.json()
        token = payload.get("access_token")
        if not token:
            raise TaxonomyAuthError("No access token received")
        try:
            expires_in = int(payload.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS)
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_TTL_SECONDS
        self._token = str(token)
        self._token_expires_at = self._clock() + expires_in
        logger.info("Taxonomy token refreshed (expires_in=%ss)", expires_in)
        return self._token

    async def fetch(self, taxonomy_type: str, **params: Any) -> list[dict[str, Any]]:
        if taxonomy_type not in TAXONOMY_TYPES:
            raise ValueError(f"Unsupported taxonomy type: {taxonomy_type}")
        query = _clean_params(params)
        if taxonomy_type not in _VEHICLE_TYPE_SCOPED:
            query.pop("vehicleType", None)
        required = TAXONOMY_TYPES[taxonomy_type]
        if required and required not in query:
            raise ValueError(f"{required} is required for {taxonomy_type}")
        if self.advertiser_id:
            query["advertiserId"] = self.advertiser_id

        token = await self.authenticate()
        try:
            async with self._client() as client:
                response = await client.get(
                    f"/taxonomy/{taxonomy_type}",
                    params=query,
                    headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                self.invalidate_token()
            raise TaxonomyRequestError(
                f"Taxonomy request {taxonomy_type} failed: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TaxonomyRequestError("Taxonomy API unreachable") from exc

        payload = response.json()
        if isinstance(payload, list):
            return payload
        records = payload.get(taxonomy_type)
        if not isinstance(records, list):
            logger.warning("Taxonomy response for %s has no %s array", taxonomy_type, taxonomy_type)
            return []
        return records

    async def options(self, taxonomy_type: str, **params: Any) -> list[models.TaxonomyOption]:
        id_field = ID_FIELDS.get(taxonomy_type)
        return [to_option(item, id_field) for item in await self.fetch(taxonomy_type, **params)]

    async def get_derivatives(self, generation_id: str, **filters: Any) -> list[models.TaxonomyOption]:
        facets = {key: value for key, value in filters.items() if key in FACET_PARAMS}
        return await self.options("derivatives", generationId=generation_id, **facets)

    async def get_filtered_derivatives(self, generation_id: str, **filters: Any) -> models.FilteredDerivatives:
        """Narrow a large derivative list one facet at a time until it is small enough."""

        initial = await self.get_derivatives(generation_id, **filters)
        steps = [models.FilteringStep(step="initial", count=len(initial))]
        if len(initial) <= MAX_DERIVATIVES:
            return models.FilteredDerivatives(derivatives=initial, total_count=len(initial), filtering_steps=steps)

        current = dict(filters)
        # facet type, parameter, maximum facet count, preferred value
        plan = (
            ("trims", "trim", 3, None),
            ("badgeEngineSizes", "badgeEngineSize", 4, None),
            ("fuelTypes", "fuelType", 3, "petrol"),
            ("transmissionTypes", "transmission", None, "manual"),
        )
        for facet_type, param, max_count, preferred in plan:
            try:
                facets = await self.options(facet_type, generationId=generation_id, **current)
                if not facets or (max_count is not None and len(facets) > max_count):
                    continue
                chosen = next(
                    (facet for facet in facets if preferred and preferred in facet.name.lower()),
                    facets[0],
                )
                current[param] = chosen.name
                narrowed = await self.get_derivatives(generation_id, **current)
            except TaxonomyError as exc:
                logger.warning("Derivative filtering by %s failed: %s", param, exc)
                continue
            steps.append(models.FilteringStep(step=param, value=chosen.name, count=len(narrowed)))
            if len(narrowed) <= MAX_DERIVATIVES:
                return models.FilteredDerivatives(
                    derivatives=narrowed, total_count=len(initial), filtering_steps=steps
                )

        steps.append(models.FilteringStep(step="truncated", count=MAX_DERIVATIVES))
        return models.FilteredDerivatives(
            derivatives=initial[:MAX_DERIVATIVES], total_count=len(initial), filtering_steps=steps
        )


_client: TaxonomyClient | None = None


def get_taxonomy_client() -> TaxonomyClient:
    global _client
    if _client is None:
        _client = TaxonomyClient(
            settings.TAXONOMY_API_URL,
            settings.TAXONOMY_API_KEY,
            settings.TAXONOMY_API_SECRET,
            settings.TAXONOMY_ADVERTISER_ID,
        )
    return _client
