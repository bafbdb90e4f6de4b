"""
Event store and read model shared by every service.

Each service owns its own database (database per service). Inside it the
write side appends events to ``event_store`` and the read side keeps the
current document of every entity in ``<entity>_read_model``.

The primary key (aggregate_id, version) is the optimistic lock: two writers
that loaded the same version both try to insert version + 1, and the loser
gets ConcurrencyConflict.
"""

import json
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from .errors import ConcurrencyConflict

EVENT_STORE_DDL = """
    CREATE TABLE IF NOT EXISTS event_store (
        aggregate_id   TEXT NOT NULL,
        aggregate_type TEXT NOT NULL,
        event_type     TEXT NOT NULL,
        event_data     TEXT NOT NULL,
        version        INTEGER NOT NULL,
        created_at     TEXT NOT NULL,
        PRIMARY KEY (aggregate_id, version)
    )
"""

READ_MODEL_DDL = """
    CREATE TABLE IF NOT EXISTS {table} (
        id         TEXT PRIMARY KEY,
        document   TEXT NOT NULL,
        version    INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


async def create_schema(engine: AsyncEngine, read_model_table: str) -> None:
    async with engine.begin() as conn:
        await conn.execute(text(EVENT_STORE_DDL))
        await conn.execute(text(READ_MODEL_DDL.format(table=read_model_table)))


# ── Write side ───────────────────────────────────


async def append_event(
    session: AsyncSession,
    aggregate_id: UUID,
    aggregate_type: str,
    event_type: str,
    event_data: dict,
    expected_version: int,
) -> int:
    """
    Append one event and return the new version.

    The insert is flushed immediately so a version clash surfaces here as
    ConcurrencyConflict rather than later at commit time. The session is
    rolled back on conflict.
    """
    new_version = expected_version + 1
    try:
        await session.execute(
            text("""
                INSERT INTO event_store
                    (aggregate_id, aggregate_type, event_type, event_data, version, created_at)
                VALUES
                    (:agg_id, :agg_type, :evt_type, :evt_data, :version, :now)
            """),
            {
                "agg_id": str(aggregate_id),
                "agg_type": aggregate_type,
                "evt_type": event_type,
                "evt_data": json.dumps(event_data, default=str),
                "version": new_version,
                "now": utcnow(),
            },
        )
    except IntegrityError as e:
        await session.rollback()
        raise ConcurrencyConflict(
            f"{aggregate_type} {aggregate_id} was modified concurrently",
            {"aggregate_id": str(aggregate_id), "expected_version": expected_version},
        ) from e
    return new_version


async def load_events(session: AsyncSession, aggregate_id: UUID) -> list[dict]:
    """Read every event of one aggregate in version order (for replay)."""
    result = await session.execute(
        text("""
            SELECT event_type, event_data, version, created_at
            FROM event_store
            WHERE aggregate_id = :agg_id
            ORDER BY version ASC
        """),
        {"agg_id": str(aggregate_id)},
    )
    return [
        {
            "event_type": row.event_type,
            "event_data": json.loads(row.event_data),
            "version": row.version,
            "created_at": row.created_at,
        }
        for row in result.fetchall()
    ]


async def current_version(session: AsyncSession, aggregate_id: UUID) -> int:
    """Latest stored version of one aggregate, 0 when it has no events."""
    result = await session.execute(
        text("SELECT MAX(version) AS version FROM event_store WHERE aggregate_id = :agg_id"),
        {"agg_id": str(aggregate_id)},
    )
    return result.scalar() or 0


async def ensure_version(
    session: AsyncSession, aggregate_id: UUID, aggregate_type: str, expected_version: int
) -> None:
    """Raise ConcurrencyConflict when another writer appended after ``expected_version``."""
    stored = await current_version(session, aggregate_id)
    if stored != expected_version:
        raise ConcurrencyConflict(
            f"{aggregate_type} {aggregate_id} was modified concurrently",
            {
                "aggregate_id": str(aggregate_id),
                "expected_version": expected_version,
                "stored_version": stored,
            },
        )


# ── Read side ────────────────────────────────────


async def save_document(
    session: AsyncSession,
    table: str,
    entity_id: UUID,
    document: dict,
    version: int,
) -> None:
    """Insert or replace the projected document of one entity."""
    now = utcnow()
    params = {
        "id": str(entity_id),
        "document": json.dumps(document, default=str),
        "version": version,
        "now": now,
    }
    result = await session.execute(
        text(f"""
            UPDATE {table}
            SET document = :document, version = :version, updated_at = :now
            WHERE id = :id
        """),
        params,
    )
    if result.rowcount == 0:
        await session.execute(
            text(f"""
                INSERT INTO {table} (id, document, version, created_at, updated_at)
                VALUES (:id, :document, :version, :now, :now)
            """),
            params,
        )


async def delete_document(session: AsyncSession, table: str, entity_id: UUID) -> None:
    await session.execute(
        text(f"DELETE FROM {table} WHERE id = :id"),
        {"id": str(entity_id)},
    )


async def get_document(session: AsyncSession, table: str, entity_id: UUID) -> dict | None:
    result = await session.execute(
        text(f"SELECT document FROM {table} WHERE id = :id"),
        {"id": str(entity_id)},
    )
    row = result.fetchone()
    if not row:
        return None
    return json.loads(row.document)


async def list_documents(session: AsyncSession, table: str) -> list[dict]:
    result = await session.execute(
        text(f"SELECT document FROM {table} ORDER BY created_at ASC"),
    )
    return [json.loads(row.document) for row in result.fetchall()]
