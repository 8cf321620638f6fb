"""Concurrent evidence collection."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Optional

from releasegate.exceptions import CollectionInProgress
from releasegate.logging_config import get_logger

from .models import EvidencePackage, now_iso
from .provider import EvidenceProvider
from .storage import EvidenceStorage, InMemoryEvidenceStorage

logger = get_logger(__name__)


class EvidenceCollector:
    """Gather an evidence package from a provider and persist it.

    Only one collection runs at a time; a concurrent call is rejected with
    ``CollectionInProgress``. Each of the five collection tasks is bounded by
    ``task_timeout_s`` and degrades to an empty result on error or timeout.
    """

    def __init__(
        self,
        provider: EvidenceProvider,
        storage: EvidenceStorage | None = None,
        task_timeout_s: float = 30.0,
    ):
        self.provider = provider
        self.storage = storage or InMemoryEvidenceStorage()
        self.task_timeout_s = task_timeout_s
        self._lock = asyncio.Lock()
        self._last_package: Optional[EvidencePackage] = None

    @property
    def is_collecting(self) -> bool:
        return self._lock.locked()

    def get_last_package(self) -> Optional[EvidencePackage]:
        return self._last_package

    async def collect_evidence_package(self) -> EvidencePackage:
        """Collect all evidence concurrently and store the resulting package.

        Returns:
            The assembled evidence package

        Raises:
            CollectionInProgress: If another collection is running
        """
        if self._lock.locked():
            raise CollectionInProgress()

        async with self._lock:
            logger.info("Starting evidence collection")
            start = time.monotonic()

            screenshots, metrics, tests, journey, browsers = await asyncio.gather(
                self._bounded("screenshots", self.provider.capture_screenshots(), []),
                self._bounded("performance", self.provider.measure_performance(), None),
                self._bounded("test_results", self.provider.run_functional_tests(), []),
                self._bounded("user_journey", self.provider.replay_user_journey(), []),
                self._bounded(
                    "browser_compatibility", self.provider.check_browser_compatibility(), []
                ),
            )

            package = EvidencePackage(
                screenshots=tuple(screenshots),
                performance_metrics=metrics,
                test_results=tuple(tests),
                user_journey_proof=tuple(journey),
                browser_compatibility=tuple(browsers),
                collected_at=now_iso(),
            )

            try:
                await asyncio.to_thread(self.storage.store, package.collected_at, package)
            except Exception as e:
                logger.error(f"Error storing evidence package: {e}", exc_info=True)

            duration_ms = (time.monotonic() - start) * 1000
            self._last_package = package
            logger.info(
                f"Evidence collection completed in {duration_ms:.0f}ms",
                extra={"duration_ms": duration_ms, **package.summary()},
            )
            return package

    async def _bounded(self, name: str, coro: Awaitable[Any], empty: Any) -> Any:
        try:
            result = await asyncio.wait_for(coro, timeout=self.task_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(f"Evidence task {name} timed out after {self.task_timeout_s:g}s")
            return empty
        except Exception as e:
            logger.error(f"Error collecting {name}: {e}")
            return empty
        return empty if result is None else result
