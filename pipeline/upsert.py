"""
Load normalized rows with batched upserts keyed on each table's natural key
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from core.exceptions import UpsertError
from models.entries import SYNC_TABLES
from pipeline.run_context import SealedSyncRun
from schemas.normalized import NormalizedRow
from schemas.sync import FailedBatch, UpsertResult
import logging

logger = logging.getLogger(__name__)

# Never overwritten on conflict
_PRESERVED_COLUMNS = {"id", "natural_key", "created_at"}


class UpsertEngine:
    """
    Write rows with INSERT ... ON CONFLICT (natural_key) DO UPDATE.

    Ensures:
    - No duplicate rows on repeated runs; the later run's values win
    - Each batch is its own transaction: all rows or none
    - A failed batch never discards earlier batches or blocks later ones
    - Every written row carries the run's id and timestamp
    """

    def __init__(self, db_session: AsyncSession, batch_size: int = 500):
        self.db = db_session
        self.batch_size = batch_size

    def _insert(self, model):
        if self.db.get_bind().dialect.name == "sqlite":
            return sqlite_insert(model)
        return pg_insert(model)

    def _build_statement(self, model, values: List[Dict[str, Any]]):
        stmt = self._insert(model).values(values)
        updatable = [key for key in values[0] if key not in _PRESERVED_COLUMNS]
        return stmt.on_conflict_do_update(
            index_elements=["natural_key"],
            set_={key: stmt.excluded[key] for key in updatable}
        )

    async def upsert(
        self,
        rows: Sequence[NormalizedRow],
        table: str,
        run: SealedSyncRun
    ) -> UpsertResult:
        """
        Upsert rows into one table in fixed-size batches.

        Args:
            rows: Normalized rows destined for the table
            table: Target table name (one of models.entries.SYNC_TABLES)
            run: Sealed run whose id and start time stamp every row

        Returns:
            UpsertResult with the written count and any failed batches
        """
        model = SYNC_TABLES.get(table)
        if model is None:
            raise UpsertError(f"Unknown sync table: {table}", context={"table_name": table})

        result = UpsertResult(table=table)
        if not rows:
            return result

        # One statement cannot touch the same key twice; keep the last occurrence
        unique_rows: Dict[str, NormalizedRow] = {}
        for row in rows:
            unique_rows.pop(row.natural_key, None)
            unique_rows[row.natural_key] = row
        if len(unique_rows) < len(rows):
            logger.info(f"{table}: collapsed {len(rows) - len(unique_rows)} duplicate natural keys")

        columns = set(model.__table__.columns.keys())
        now = datetime.now(timezone.utc)
        values = []
        for row in unique_rows.values():
            row_values = {
                key: value
                for key, value in row.to_db_dict(run.run_id, run.started_at).items()
                if key in columns
            }
            row_values["created_at"] = now
            row_values["updated_at"] = now
            values.append(row_values)

        for index, start in enumerate(range(0, len(values), self.batch_size)):
            batch = values[start:start + self.batch_size]

            try:
                await self.db.execute(self._build_statement(model, batch))
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                error = UpsertError(
                    f"Upsert batch {index + 1} failed",
                    context={"table_name": table, "batch_index": index, "batch_size": len(batch)},
                    original_exception=e
                )
                logger.error(str(error), extra={"error_context": error.to_dict()})
                result.failed_batches.append(FailedBatch(
                    index=index,
                    size=len(batch),
                    natural_keys=[v["natural_key"] for v in batch],
                    error=str(e)
                ))
                continue

            result.written += len(batch)
            logger.info(f"{table} batch {index + 1}: upserted {len(batch)} rows")

        logger.info(
            f"{table}: {result.written} rows written, "
            f"{result.failed_rows} rows in {len(result.failed_batches)} failed batches"
        )
        return result
