from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from ens_indexer.app.domain.names import ResolvedName, normalize_address, token_id_to_labelhash
from ens_indexer.app.domain.ports.out import NameResolver

logger = logging.getLogger(__name__)

# namehash("eth")
ETH_PARENT_NODE = "0x93cdeb708b7545dc668eb9280176169d1c33cfd8ed6f04690a0bcc88a93fc4ae"
NAME_WRAPPER_ADDRESS = "0xd4416b13d2b3a9abae7acd5d6c2bbdbe25686401"

_DOMAIN_FIELDS = """
    id
    name
    labelName
    labelhash
    expiryDate
    owner { id }
    registrant { id }
    wrappedOwner { id }
    registration { expiryDate registrationDate }
    resolver { textChangeds { key value } }
"""

_ONE_QUERY = f"""
query GetEnsName($labelhash: String!, $parent: String!) {{
  domains(where: {{ labelhash: $labelhash, parent: $parent }}) {{
    {_DOMAIN_FIELDS}
  }}
}}
"""

_BATCH_QUERY = f"""
query GetEnsNames($labelhashes: [String!]!, $parent: String!, $first: Int!) {{
  domains(first: $first, where: {{ labelhash_in: $labelhashes, parent: $parent }}) {{
    {_DOMAIN_FIELDS}
  }}
}}
"""


class GraphNameResolver(NameResolver):
    """
    NameResolver backed by the ENS subgraph.

    - one in-memory cache keyed by the looked-up token id, owned by this
      object and cleared only through clear_cache(),
    - resolve_batch sends one query for all ids not yet cached,
    - unknown ids and transport/GraphQL errors yield None, never an exception,
    - wrapped, unexpired names come back with the wrapper's token id
      (int(domain.id)) instead of the labelhash-derived one.
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._clock = clock
        self._cache: dict[str, ResolvedName] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        logger.info("Clearing name resolver cache (%d entries)", len(self._cache))
        self._cache.clear()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def resolve_one(self, *, token_id: str) -> ResolvedName | None:
        token_id = str(token_id)
        cached = self._cache.get(token_id)
        if cached is not None:
            return cached

        labelhash = token_id_to_labelhash(token_id)
        data = await self._query(_ONE_QUERY, {"labelhash": labelhash, "parent": ETH_PARENT_NODE})
        if data is None:
            return None

        domains = data.get("domains") or []
        if not domains:
            logger.debug("No domain found for token %s", token_id, extra={"token_id": token_id})
            return None

        resolved = self._to_resolved(token_id, domains[0])
        if resolved is not None:
            self._cache[token_id] = resolved
        return resolved

    async def resolve_batch(self, *, token_ids: list[str]) -> dict[str, str | None]:
        results: dict[str, str | None] = {}
        pending: list[str] = []
        for raw in token_ids:
            token_id = str(raw)
            if token_id in results or token_id in pending:
                continue
            cached = self._cache.get(token_id)
            if cached is not None:
                results[token_id] = cached.name
            else:
                pending.append(token_id)

        if not pending:
            return results

        labelhashes = {token_id_to_labelhash(t): t for t in pending}
        data = await self._query(
            _BATCH_QUERY,
            {
                "labelhashes": list(labelhashes),
                "parent": ETH_PARENT_NODE,
                "first": len(labelhashes),
            },
        )

        domains_by_labelhash: dict[str, dict[str, Any]] = {}
        for domain in (data or {}).get("domains") or []:
            labelhash = domain.get("labelhash")
            if isinstance(labelhash, str):
                domains_by_labelhash[labelhash.lower()] = domain

        for labelhash, token_id in labelhashes.items():
            domain = domains_by_labelhash.get(labelhash)
            resolved = self._to_resolved(token_id, domain) if domain is not None else None
            if resolved is not None:
                self._cache[token_id] = resolved
            results[token_id] = resolved.name if resolved is not None else None

        return results

    # ---------------------------------------------------------------------
    # Transport
    # ---------------------------------------------------------------------

    async def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any] | None:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)

        try:
            response = await self._client.post(
                self._url,
                json={"query": query, "variables": variables},
                headers=headers,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Name resolution request failed: %s", exc)
            return None
        except ValueError as exc:
            logger.warning("Name resolution returned invalid JSON: %s", exc)
            return None

        if body.get("errors"):
            logger.warning("Name resolution query errors: %s", body["errors"])
            return None

        data = body.get("data")
        return data if isinstance(data, dict) else None

    # ---------------------------------------------------------------------
    # Mapping
    # ---------------------------------------------------------------------

    def _to_resolved(self, token_id: str, domain: dict[str, Any]) -> ResolvedName | None:
        name = domain.get("name")
        if not name:
            label = domain.get("labelName")
            name = f"{label}.eth" if label else None
        if not name:
            return None

        registration = domain.get("registration") or {}
        owner = _nested_id(domain.get("wrappedOwner")) or _nested_id(domain.get("registrant"))

        text_records: dict[str, str] = {}
        resolver = domain.get("resolver") or {}
        for record in resolver.get("textChangeds") or []:
            key, value = record.get("key"), record.get("value")
            if key and value:
                text_records[key] = value

        return ResolvedName(
            name=name,
            token_id=self._corrected_token_id(token_id, domain),
            owner=normalize_address(owner),
            expiry_date=_epoch(registration.get("expiryDate")),
            registration_date=_epoch(registration.get("registrationDate")),
            text_records=text_records,
        )

    def _corrected_token_id(self, token_id: str, domain: dict[str, Any]) -> str:
        owner = (_nested_id(domain.get("owner")) or "").lower()
        if owner != NAME_WRAPPER_ADDRESS:
            return token_id

        expiry = domain.get("expiryDate")
        if expiry is None:
            return token_id
        try:
            expired = int(expiry) * 1000 < self._clock() * 1000
        except (TypeError, ValueError):
            return token_id
        if expired:
            return token_id

        domain_id = domain.get("id")
        if not isinstance(domain_id, str):
            return token_id
        return str(int(domain_id, 16))


def _nested_id(value: Any) -> str | None:
    if isinstance(value, dict) and isinstance(value.get("id"), str):
        return value["id"]
    return None


def _epoch(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
