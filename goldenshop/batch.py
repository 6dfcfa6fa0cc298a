"""
Fan-out/join for batches of independent store writes.

Tasks run concurrently on a thread pool; each outcome is captured under the
task's key. Nothing is ordered, retried or rolled back.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from goldenshop.errors import PartialFailure, ShopError

logger = logging.getLogger(__name__)


class BatchReport(BaseModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self, message: Optional[str] = None) -> None:
        if self.failed:
            raise PartialFailure(self, message)


def fan_out(tasks: Dict[str, Callable[[], object]], workers: int = 8) -> BatchReport:
    report = BatchReport()
    if not tasks:
        return report

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(tasks)))) as pool:
        futures = {key: pool.submit(task) for key, task in tasks.items()}

    for key, future in futures.items():
        exc = future.exception()
        if exc is None:
            report.succeeded.append(key)
        elif isinstance(exc, ShopError):
            report.failed[key] = exc.message
        else:
            logger.error("batch task %s crashed: %s", key, exc)
            report.failed[key] = str(exc)
    return report
