"""
InterestSweep -- nightly 234C recalculation across many assessments.

Contract:
    Re-tracks installments and 234C interest as of today for every draft or
    active assessment of a financial year.  Different assessments run in
    parallel; the same assessment never runs twice at once.

Architecture: corptax_modules/advance_tax.  Imports the service and ORM of
    this module and the kernel clock/logging.

Invariants enforced:
    - One session (and one transaction) per item: one failure does not
      abort the sweep.
    - Per-assessment lock: a second sweep touching the same assessment
      waits for the first to finish.  Locks are dropped once released.
    - All dates from the injected Clock.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from corptax_kernel.domain.clock import Clock, SystemClock
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.logging_config import LogContext, get_logger
from corptax_modules.advance_tax.models import AssessmentStatus
from corptax_modules.advance_tax.orm import AdvanceTaxAssessmentModel
from corptax_modules.advance_tax.service import AdvanceTaxService

logger = get_logger("modules.advance_tax.sweep")

ServiceFactory = Callable[[Session], AdvanceTaxService]


@dataclass(frozen=True)
class SweepItemResult:
    assessment_id: UUID
    succeeded: bool
    interest_234c: Decimal | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class SweepResult:
    financial_year: str
    items: tuple[SweepItemResult, ...]
    duration_ms: float

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.succeeded)


class AssessmentLockRegistry:
    """
    In-process lock per assessment id.

    A lock exists only while some sweep holds or waits for it; the last
    holder to leave drops it, so the registry does not grow across sweeps.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.Lock] = {}
        self._users: dict[UUID, int] = {}

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, assessment_id: UUID) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(assessment_id, threading.Lock())
            self._users[assessment_id] = self._users.get(assessment_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[assessment_id] -= 1
                if self._users[assessment_id] == 0:
                    del self._users[assessment_id]
                    del self._locks[assessment_id]


class InterestSweep:
    """
    Runs ``AdvanceTaxService.recalculate_interest`` for many assessments.

    Contract:
        - ``run()`` selects draft/active assessments of the financial year
          (optionally limited to ``company_ids``) and processes them on a
          thread pool.
        - Per-item failures are captured in the result, never raised.

    Non-goals:
        - Does NOT touch finalized assessments (their interest is fixed).
        - Does NOT schedule itself; callers decide when a sweep runs.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        service_factory: ServiceFactory,
        clock: Clock | None = None,
        max_workers: int = 4,
        locks: AssessmentLockRegistry | None = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._session_factory = session_factory
        self._service_factory = service_factory
        self._clock = clock or SystemClock()
        self._max_workers = max_workers
        self._locks = locks if locks is not None else AssessmentLockRegistry()

    def run(
        self,
        financial_year: str,
        actor_id: UUID,
        company_ids: Sequence[UUID] | None = None,
    ) -> SweepResult:
        fy = FinancialYear.parse(financial_year)
        start = time.monotonic()
        assessment_ids = self._select(fy.label, company_ids)

        logger.info("interest_sweep_started", extra={
            "financial_year": fy.label,
            "assessment_count": len(assessment_ids),
            "as_of": self._clock.today().isoformat(),
            "max_workers": self._max_workers,
        })

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            items = tuple(pool.map(lambda aid: self._process(aid, actor_id), assessment_ids))

        result = SweepResult(
            financial_year=fy.label,
            items=items,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        logger.info("interest_sweep_completed", extra={
            "financial_year": fy.label,
            "succeeded": result.succeeded,
            "failed": result.failed,
            "duration_ms": result.duration_ms,
        })
        return result

    def _select(self, financial_year: str, company_ids: Sequence[UUID] | None) -> list[UUID]:
        stmt = select(AdvanceTaxAssessmentModel.id).where(
            AdvanceTaxAssessmentModel.financial_year == financial_year,
            AdvanceTaxAssessmentModel.status.in_(
                (AssessmentStatus.DRAFT.value, AssessmentStatus.ACTIVE.value),
            ),
        )
        if company_ids is not None:
            stmt = stmt.where(AdvanceTaxAssessmentModel.company_id.in_(list(company_ids)))
        with self._session_factory() as session:
            return list(session.scalars(stmt.order_by(AdvanceTaxAssessmentModel.company_id)))

    def _process(self, assessment_id: UUID, actor_id: UUID) -> SweepItemResult:
        with self._locks.hold(assessment_id), LogContext.bind(
            assessment_id=str(assessment_id),
        ), self._session_factory() as session:
            try:
                service = self._service_factory(session)
                assessment = service.recalculate_interest(assessment_id, actor_id)
            except Exception as exc:
                code = getattr(exc, "code", "UNHANDLED_EXCEPTION")
                logger.warning("interest_sweep_item_failed", extra={
                    "assessment_id": str(assessment_id),
                    "error_code": code,
                    "error": str(exc),
                }, exc_info=True)
                return SweepItemResult(
                    assessment_id=assessment_id,
                    succeeded=False,
                    error_code=code,
                    error_message=str(exc),
                )
        return SweepItemResult(
            assessment_id=assessment_id,
            succeeded=True,
            interest_234c=assessment.interest_234c,
        )
