"""
Batch runner: reconcile a list of FileRecords one after another.

Records are processed strictly sequentially; the Empolis API is rate
limited and the token cache is shared. A record that fails is logged and
counted, then the batch moves on. Authentication failures and service
outages stop the batch because every following record would fail too.
"""

import logging
import time
from typing import Iterable, Optional

from .errors import AuthError, ServiceUnavailable
from .gateway import ApiGateway
from .reconcile import Reconciler
from .types import BatchSummary, DataSourceSelection, Failed, FileRecord

logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """Drives the Reconciler over a sequence of records."""

    def __init__(self, gateway: ApiGateway, reconciler: Optional[Reconciler] = None):
        self._gateway = gateway
        self._reconciler = reconciler or Reconciler(gateway)

    async def run_batch(
        self,
        records: Iterable[FileRecord],
        data_source: DataSourceSelection,
        *,
        check_health: bool = True,
    ) -> BatchSummary:
        """
        Reconcile every record and return the outcome counts.

        Args:
            records: Records to reconcile, in order
            data_source: Collection the records belong to
            check_health: Verify all services are operational first

        Raises:
            AuthError: No token could be obtained
            ServiceUnavailable: A service is down
        """
        started = time.perf_counter()
        if check_health:
            await self._gateway.check_service_health()

        summary = BatchSummary()
        for record in records:
            try:
                outcome = await self._reconciler.reconcile(record, data_source)
            except (AuthError, ServiceUnavailable):
                logger.error(
                    "Batch for %s aborted at %s after %d records",
                    data_source.name, record.filename, summary.total,
                )
                raise
            except Exception as e:
                logger.exception("Unexpected error reconciling %s", record.filename)
                outcome = Failed(e)
            summary.add(record.filename, outcome)

        logger.info(
            "Batch for %s done in %.2fs: %d updated, %d skipped, %d failed",
            data_source.name, time.perf_counter() - started,
            summary.updated, summary.skipped, summary.failed,
        )
        for filename, error in summary.failures:
            logger.error("  %s: %s", filename, error)
        return summary
