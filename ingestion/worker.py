"""
Fetch-and-update worker: one entity at a time.

For each entity the worker calls every active provider concurrently, merges
their fields by priority, validates the primary value, writes a partial
update to the target table and records the terminal queue status. Provider
failures only remove that provider's fields; validation and update failures
mark the single entity failed. Queue-state failures propagate to the runner.
"""

import asyncio
from datetime import date
from typing import Any, Dict, List, Sequence

from core.exceptions import (
    EntityValidationError,
    InvalidUpstreamDataError,
    PersistenceError,
    QueueStateError,
)
from ingestion.extractors.base import Provider
from ingestion.loaders.postgres_loader import TargetUpdater
from ingestion.queue import TaskQueue
from ingestion.transformers.field_mapping import PRIMARY_FIELD, MarketProfile
from ingestion.transformers import merger
from models.base import QueueStatus
from schemas.queue import EntityOutcome, ErrorKind, ProviderResult
import logging

logger = logging.getLogger(__name__)

INVALID_UPSTREAM_MESSAGE = "invalid/missing upstream data"


class EntityWorker:
    """
    Process single queue entries against the configured providers.

    Attributes:
        queue: Task queue used for terminal transitions
        updater: Writer for the market's target table
        providers: Active providers, highest priority first
        profile: Market profile being updated
    """

    def __init__(
        self,
        queue: TaskQueue,
        updater: TargetUpdater,
        providers: Sequence[Provider],
        profile: MarketProfile
    ):
        self.queue = queue
        self.updater = updater
        self.providers = list(providers)
        self.profile = profile

    async def fetch_from_providers(self, entity_key: str) -> List[ProviderResult]:
        """Call all providers for one entity; results keep provider order"""
        if not self.providers:
            return []
        return list(await asyncio.gather(*(p.fetch(entity_key) for p in self.providers)))

    def merge_fields(self, entity_key: str, results: Sequence[ProviderResult]) -> Dict[str, Any]:
        """
        Merge provider fields and validate the primary value.

        Raises:
            InvalidUpstreamDataError: If no provider supplied a usable primary value
        """
        fields = merger.merge_fields(results)

        primary = fields.get(PRIMARY_FIELD)
        if primary is None or primary <= 0:
            errors = _provider_errors(results)
            message = INVALID_UPSTREAM_MESSAGE
            if errors:
                message += " (" + "; ".join(f"{name}: {err}" for name, err in errors.items()) + ")"
            raise InvalidUpstreamDataError(
                message,
                context={"entity_key": entity_key, "provider_errors": errors}
            )

        return fields

    async def apply_update(self, entity_key: str, fields: Dict[str, Any], run_date: date) -> List[str]:
        return await self.updater.update_fields(entity_key, fields, run_date)

    async def process(self, entity_key: str, run_date: date) -> EntityOutcome:
        """
        Run fetch, merge, update and the terminal transition for one entity.

        Raises:
            QueueStateError: If the queue itself cannot be updated
        """
        results = await self.fetch_from_providers(entity_key)
        provider_errors = _provider_errors(results)

        try:
            fields = self.merge_fields(entity_key, results)
            written = await self.apply_update(entity_key, fields, run_date)

        except EntityValidationError as e:
            logger.warning(f"{entity_key}: {e.message}", extra={"error_context": e.to_dict()})
            return await self._fail(entity_key, run_date, e.message, ErrorKind(e.error_kind), provider_errors)

        except QueueStateError:
            raise

        except PersistenceError as e:
            logger.error(f"{entity_key}: update failed: {e.message}", extra={"error_context": e.to_dict()})
            await self.updater.db.rollback()
            return await self._fail(entity_key, run_date, e.message, ErrorKind.PERSISTENCE, provider_errors)

        await self.queue.mark_completed(entity_key, run_date)
        logger.info(f"{entity_key}: completed ({len(written)} fields)")

        return EntityOutcome(
            entity_key=entity_key,
            status=QueueStatus.COMPLETED,
            fields_updated=written,
            provider_errors=provider_errors
        )

    async def _fail(
        self,
        entity_key: str,
        run_date: date,
        message: str,
        kind: ErrorKind,
        provider_errors: Dict[str, str]
    ) -> EntityOutcome:
        await self.queue.mark_failed(entity_key, run_date, message)
        return EntityOutcome(
            entity_key=entity_key,
            status=QueueStatus.FAILED,
            error_kind=kind,
            error_message=message,
            provider_errors=provider_errors
        )


def _provider_errors(results: Sequence[ProviderResult]) -> Dict[str, str]:
    return {
        r.provider: f"{r.error_kind.value if r.error_kind else 'error'}: {r.error_message}"
        for r in results
        if not r.ok
    }
