from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from ens_indexer.app.domain.errors import NameConflictError
from ens_indexer.app.domain.jobs import NAME_RESYNC
from ens_indexer.app.domain.names import (
    ZERO_ADDRESS,
    NameRow,
    NameUpsert,
    ResolvedName,
    is_placeholder,
    looks_canonical,
    placeholder_name,
)
from ens_indexer.app.domain.ports.out import JobOptions, JobPublisher, NameResolver, NameStore

logger = logging.getLogger(__name__)


class NameRecordService:
    """
    Find-or-create for ens_names rows, shared by every producer.

    Identity rules:
    - an existing row for the event's token id is always the write target,
      even when it still holds a placeholder (the name is then filled in place),
    - otherwise the resolver decides both the name and the token id to store
      (wrapped names get the wrapper's id),
    - if nothing resolves, a `token-<id>` placeholder is written and a
      name-resync job is queued.

    When the real-name index reports that the name already lives on another
    row, the write is replayed against that row's token id.
    """

    def __init__(
        self,
        *,
        names: NameStore,
        resolver: NameResolver,
        jobs: JobPublisher,
    ) -> None:
        self._names = names
        self._resolver = resolver
        self._jobs = jobs

    async def write(
        self,
        *,
        token_id: str,
        name_hint: str | None = None,
        owner: str | None = None,
        owner_position: tuple[int, int] | None = None,
        touch_owner: bool = True,
        registrant: str | None = None,
        expiry_date: datetime | None = None,
        registration_date: datetime | None = None,
        last_transfer_date: datetime | None = None,
    ) -> NameRow:
        """
        Upsert the row for `token_id` and return it.

        With touch_owner=False the owner is only set when the row is created
        (from `owner`, else the resolved owner, else the zero address) and is
        never changed on an existing row.
        """
        store_token_id, name, resolved = await self._identify(token_id=token_id, name_hint=name_hint)

        record = NameUpsert(
            token_id=store_token_id,
            name=name,
            owner_address=owner,
            owner_block_number=owner_position[0] if owner_position else None,
            owner_log_index=owner_position[1] if owner_position else None,
            registrant=registrant,
            expiry_date=expiry_date or (resolved.expiry_date if resolved else None),
            registration_date=registration_date or (resolved.registration_date if resolved else None),
            last_transfer_date=last_transfer_date,
            text_records=resolved.text_records if resolved and resolved.text_records else None,
        )

        if touch_owner:
            row = await self._upsert(record)
        else:
            initial_owner = owner or (resolved.owner if resolved else None) or ZERO_ADDRESS
            row = await self._insert_if_missing(replace(record, owner_address=initial_owner))
            if is_placeholder(row.name) and not is_placeholder(record.name):
                row = await self._upsert(
                    replace(
                        record,
                        token_id=row.token_id,
                        owner_address=None,
                        owner_block_number=None,
                        owner_log_index=None,
                    )
                )

        if is_placeholder(row.name):
            self._jobs.publish(
                NAME_RESYNC,
                {"ensNameId": row.id, "tokenId": row.token_id},
                options=JobOptions(singleton_key=f"name-resync:{row.token_id}"),
            )
        return row

    async def _identify(
        self,
        *,
        token_id: str,
        name_hint: str | None,
    ) -> tuple[str, str, ResolvedName | None]:
        existing = await self._names.get_name_by_token_id(token_id=token_id)
        if existing is not None and not is_placeholder(existing.name):
            return existing.token_id, existing.name, None

        if looks_canonical(name_hint):
            target = existing.token_id if existing is not None else token_id
            return target, name_hint, None  # type: ignore[return-value]

        resolved = await self._resolver.resolve_one(token_id=token_id)
        if existing is not None:
            name = resolved.name if resolved is not None else existing.name
            return existing.token_id, name, resolved
        if resolved is not None:
            if resolved.token_id != token_id:
                logger.debug(
                    "Token %s is wrapped, storing as %s",
                    token_id,
                    resolved.token_id,
                    extra={"token_id": token_id},
                )
            return resolved.token_id, resolved.name, resolved

        logger.info(
            "Could not resolve token %s, storing placeholder",
            token_id,
            extra={"token_id": token_id},
        )
        return token_id, placeholder_name(token_id), None

    async def _upsert(self, record: NameUpsert) -> NameRow:
        try:
            return await self._names.upsert_name(record=record)
        except NameConflictError:
            target = await self._conflict_target(record)
            return await self._names.upsert_name(record=replace(record, token_id=target.token_id))

    async def _insert_if_missing(self, record: NameUpsert) -> NameRow:
        try:
            return await self._names.insert_name_if_missing(record=record)
        except NameConflictError:
            target = await self._conflict_target(record)
            return await self._names.insert_name_if_missing(record=replace(record, token_id=target.token_id))

    async def _conflict_target(self, record: NameUpsert) -> NameRow:
        existing = await self._names.get_name_by_name(name=record.name)
        if existing is None:
            # the conflicting row disappeared; nothing left to merge into
            raise NameConflictError(record.name, record.token_id)
        logger.info(
            "Name %s already stored for token %s, writing token %s into that row",
            record.name,
            existing.token_id,
            record.token_id,
            extra={"token_id": record.token_id, "ens_name_id": existing.id},
        )
        return existing
