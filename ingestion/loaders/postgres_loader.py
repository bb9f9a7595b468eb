"""
Write merged fields onto the target table with coalesce-on-write semantics
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import TargetUpdateError
from ingestion.transformers.field_mapping import MarketProfile
import logging

logger = logging.getLogger(__name__)


class TargetUpdater:
    """
    Partial updates of existing target records.

    Ensures:
    - Only existing rows are updated (no inserts)
    - A null incoming value never overwrites a stored value
    - Columns not supplied are left untouched
    - The updated-at (and run-date) columns are set on every update

    The caller owns the transaction: update_fields does not commit, so the
    queue status change that follows can be committed together with it.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        profile: MarketProfile,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.db = db_session
        self.profile = profile
        self.clock = clock

    def build_values(self, fields: Mapping[str, Any], run_date: Optional[date] = None) -> Dict[str, Any]:
        """SET clause: coalesce(new, existing) for each mapped field"""
        model = self.profile.target_model
        values: Dict[str, Any] = {}

        for column, value in self.profile.to_columns(fields).items():
            if value is None:
                continue
            values[column] = func.coalesce(value, getattr(model, column))

        if self.profile.updated_at_column:
            values[self.profile.updated_at_column] = self.clock()
        if self.profile.run_date_column and run_date is not None:
            values[self.profile.run_date_column] = run_date

        return values

    async def update_fields(
        self,
        entity_key: str,
        fields: Mapping[str, Any],
        run_date: Optional[date] = None
    ) -> List[str]:
        """
        Apply a partial update to one target record.

        Args:
            entity_key: Key of the record to update
            fields: Logical field -> value (already merged)
            run_date: Stamped into the run-date column when the market has one

        Returns:
            Column names written from upstream data

        Raises:
            TargetUpdateError: If the record does not exist or the write fails
        """
        model = self.profile.target_model
        key = getattr(model, self.profile.key_column)
        values = self.build_values(fields, run_date)
        data_columns = sorted(c for c, v in self.profile.to_columns(fields).items() if v is not None)

        context = {
            "entity_key": entity_key,
            "table_name": self.profile.table_name,
            "operation": "UPDATE",
        }

        try:
            result = await self.db.execute(
                update(model)
                .where(key == entity_key)
                .values(values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise TargetUpdateError(
                f"Failed to update {self.profile.table_name} for {entity_key}",
                context=context,
                original_exception=e
            )

        if result.rowcount == 0:
            raise TargetUpdateError("target record not found", context=context)

        logger.debug(f"{entity_key}: updated {len(data_columns)} columns in {self.profile.table_name}")
        return data_columns
