"""Write-through storage for metadata assignments and hidden groups."""

from __future__ import annotations

import logging
from typing import Mapping

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import HiddenGroup, MetadataAssignment
from ..models import MetadataEntry

logger = logging.getLogger(__name__)


class StateRepository:
    """Mirrors the user-curated parts of the library store to the database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load(self) -> tuple[dict[str, MetadataEntry], set[str]]:
        """Return the stored metadata assignments and hidden keys."""

        metadata: dict[str, MetadataEntry] = {}
        async with self._session_factory() as session:
            rows = (await session.execute(select(MetadataAssignment))).scalars().all()
            for row in rows:
                try:
                    metadata[row.record_id] = MetadataEntry.model_validate(row.payload)
                except ValidationError as exc:
                    logger.warning(
                        "Dropping unreadable assignment for %s: %s", row.record_id, exc
                    )
            hidden = set((await session.execute(select(HiddenGroup.key))).scalars().all())
        logger.info(
            "Loaded %s metadata assignments and %s hidden groups",
            len(metadata),
            len(hidden),
        )
        return metadata, hidden

    async def save_assignments(self, assignments: Mapping[str, MetadataEntry]) -> None:
        if not assignments:
            return
        async with self._session_factory() as session:
            for record_id, entry in assignments.items():
                payload = entry.model_dump(mode="json")
                row = await session.get(MetadataAssignment, record_id)
                if row is None:
                    session.add(MetadataAssignment(record_id=record_id, payload=payload))
                else:
                    row.payload = payload
            await session.commit()

    async def set_hidden(self, key: str, hidden: bool) -> None:
        async with self._session_factory() as session:
            if hidden:
                if await session.get(HiddenGroup, key) is None:
                    session.add(HiddenGroup(key=key))
            else:
                await session.execute(delete(HiddenGroup).where(HiddenGroup.key == key))
            await session.commit()
