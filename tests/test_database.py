from __future__ import annotations

import pytest
from sqlalchemy import create_engine, inspect

from app.database import Database
from app.models import Episode, MetadataEntry
from app.services.persistence import StateRepository


@pytest.mark.anyio("asyncio")
async def test_create_all_is_idempotent_and_keeps_rows(tmp_path) -> None:
    """Running create_all against an existing database must not drop state."""

    database_path = tmp_path / "state.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    try:
        await database.create_all()
        repository = StateRepository(database.session_factory)
        await repository.set_hidden("inception", True)

        await database.create_all()
        _, hidden = await repository.load()
    finally:
        await database.dispose()

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        tables = set(inspector.get_table_names())
        columns = {column["name"] for column in inspector.get_columns("metadata_assignments")}
    finally:
        inspector_engine.dispose()

    assert {"metadata_assignments", "hidden_groups"} <= tables
    assert columns == {"record_id", "payload", "updated_at"}
    assert hidden == {"inception"}


@pytest.mark.anyio("asyncio")
async def test_repository_round_trip(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
    await database.create_all()
    repository = StateRepository(database.session_factory)
    show = MetadataEntry(
        id="tt0903747",
        name="Breaking Bad",
        type="series",
        episodes=(Episode(id="tt0903747:1:1", season=1, episode=1, title="Pilot"),),
    )
    try:
        await repository.save_assignments({"D1": show, "T1": show})
        await repository.save_assignments(
            {"T1": MetadataEntry(id="tt1375666", name="Inception", type="movie")}
        )
        await repository.set_hidden("breakingbad", True)
        await repository.set_hidden("other", True)
        await repository.set_hidden("other", False)

        metadata, hidden = await repository.load()
    finally:
        await database.dispose()

    assert metadata["D1"] == show
    assert metadata["T1"].id == "tt1375666"
    assert hidden == {"breakingbad"}
