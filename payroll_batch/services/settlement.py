"""
PayrollRunSettler -- SAVEPOINT-per-employee run settlement.

Contract:
    ``settle_run()`` builds and stores one pending payslip per employee;
    ``approve_run()`` approves every pending payslip of a run into the
    accumulation ledger.  Both report per-employee results and never stop
    at the first failure.

Architecture: payroll_batch/services.  Imports from payroll_batch.domain,
    payroll_config and payroll_modules services.

Invariants enforced:
    - Each employee runs in its own SAVEPOINT: a failure rolls back that
      employee's writes only.
    - Typed errors are recorded with their ``code``; anything else is
      recorded as ``UNHANDLED_EXCEPTION`` and logged with its traceback.
    - All timestamps come from the injected Clock.
    - Never commits; the caller owns the transaction.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from payroll_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchOperation,
    BatchRunResult,
    SettlementRequest,
    derive_job_status,
)
from payroll_config.resolver import ConfigurationResolver
from payroll_config.schema import PayrollConfigVersion
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import DuplicatePayslipError, PayrollKernelError, ProfileNotFoundError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.debt.scheduler import month_start
from payroll_modules.debt.service import DebtService
from payroll_modules.ledger.service import LedgerService
from payroll_modules.payslip.calculator import prepare_lines
from payroll_modules.payslip.models import Payslip, PayslipApproval, PayslipStatus
from payroll_modules.payslip.service import PayslipService

logger = get_logger("batch.settlement")


class PayrollRunSettler:
    """Settles and approves payroll runs with per-employee isolation.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT load employee profiles; requests carry them.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        resolver: ConfigurationResolver | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._resolver = resolver or ConfigurationResolver(session, self._clock, self._auditor)
        ledger = LedgerService(session, self._clock, auditor=self._auditor)
        self._debts = DebtService(session, self._clock, auditor=self._auditor, ledger=ledger)
        self._payslips = PayslipService(session, self._clock, auditor=self._auditor, ledger=ledger)
        self._configs: dict[date, PayrollConfigVersion] = {}

    def _config_for(self, payroll_month: date) -> PayrollConfigVersion:
        if payroll_month not in self._configs:
            self._configs[payroll_month] = self._resolver.resolve(payroll_month)
        return self._configs[payroll_month]

    def _run_item(
        self,
        index: int,
        key: str,
        work: Callable[[], dict[str, Any]],
    ) -> BatchItemResult:
        """Run ``work`` inside a SAVEPOINT and describe the outcome."""
        item_start = time.monotonic()
        started_at = self._clock.now()
        savepoint = self._session.begin_nested()
        status = BatchItemStatus.SUCCEEDED
        error_code = None
        error_message = None
        result_data = None
        try:
            result_data = work()
            savepoint.commit()
        except DuplicatePayslipError as exc:
            savepoint.rollback()
            status, error_code, error_message = BatchItemStatus.SKIPPED, exc.code, str(exc)
        except PayrollKernelError as exc:
            savepoint.rollback()
            status, error_code, error_message = BatchItemStatus.FAILED, exc.code, str(exc)
            logger.warning(
                "batch_item_failed",
                extra={"item_key": key, "error_code": exc.code, "error_message": str(exc)},
            )
        except Exception as exc:
            savepoint.rollback()
            status, error_code, error_message = BatchItemStatus.FAILED, "UNHANDLED_EXCEPTION", str(exc)
            logger.exception("batch_item_unhandled_exception", extra={"item_key": key})

        return BatchItemResult(
            item_index=index,
            item_key=key,
            status=status,
            error_code=error_code,
            error_message=error_message,
            result_data=result_data,
            duration_ms=int((time.monotonic() - item_start) * 1000),
            started_at=started_at,
            completed_at=self._clock.now(),
        )

    def settle_run(
        self,
        run_id: UUID,
        payroll_month: date,
        requests: Iterable[SettlementRequest],
        actor_id: UUID,
    ) -> BatchRunResult:
        """
        Prepare and store a pending payslip for every request.

        Postconditions:
            - One result per request, in request order.
            - ``payslips`` holds the payslips stored by this call.
            - An employee already settled in the run is SKIPPED.
        """
        payroll_month = month_start(payroll_month)
        # Per-call cache; each run resolves against the current store.
        self._configs.clear()
        start = time.monotonic()
        started_at = self._clock.now()
        results: list[BatchItemResult] = []
        payslips: list[Payslip] = []

        with LogContext.bind(run_id=run_id, actor_id=actor_id):
            logger.info(
                "payroll_run_settlement_started",
                extra={"payroll_month": payroll_month},
            )
            for index, request in enumerate(requests):

                def work(request: SettlementRequest = request) -> dict[str, Any]:
                    if request.profile is None:
                        raise ProfileNotFoundError(str(request.employee_id))
                    config = self._config_for(payroll_month)
                    due = self._debts.installments_due(request.employee_id, payroll_month)
                    lines = prepare_lines(request.inputs, request.profile, config, due)
                    payslip = self._payslips.create(
                        run_id=run_id,
                        employee_id=request.employee_id,
                        payroll_month=payroll_month,
                        lines=lines,
                        profile=request.profile,
                        config=config,
                        actor_id=actor_id,
                    )
                    payslips.append(payslip)
                    return {"payslip_id": str(payslip.id), "net_pay": str(payslip.net_pay)}

                with LogContext.bind(employee_id=request.employee_id):
                    results.append(self._run_item(index, str(request.employee_id), work))

            report = self._report(
                run_id, BatchOperation.SETTLE, payroll_month, results, start, started_at,
                payslips=tuple(payslips),
            )
            logger.info(
                "payroll_run_settled",
                extra={
                    "status": report.status.value,
                    "succeeded": report.succeeded,
                    "failed": report.failed,
                    "skipped": report.skipped,
                },
            )
        return report

    def approve_run(self, run_id: UUID, actor_id: UUID) -> BatchRunResult:
        """
        Approve every pending payslip of the run.

        Postconditions:
            - ``approvals`` holds each approval and the ledger deltas it
              applied.
        """
        start = time.monotonic()
        started_at = self._clock.now()
        results: list[BatchItemResult] = []
        approvals: list[PayslipApproval] = []

        with LogContext.bind(run_id=run_id, actor_id=actor_id):
            pending = self._payslips.list_for_run(run_id, status=PayslipStatus.PENDING)
            for index, payslip in enumerate(pending):

                def work(payslip: Payslip = payslip) -> dict[str, Any]:
                    approval = self._payslips.approve(payslip.id, actor_id)
                    approvals.append(approval)
                    return {
                        "payslip_id": str(payslip.id),
                        "ledger_deltas": {k: str(v) for k, v in approval.ledger_deltas.items()},
                    }

                with LogContext.bind(employee_id=payslip.employee_id):
                    results.append(self._run_item(index, str(payslip.employee_id), work))

            payroll_month = pending[0].payroll_month if pending else None
            report = self._report(
                run_id, BatchOperation.APPROVE, payroll_month, results, start, started_at,
                approvals=tuple(approvals),
            )
            logger.info(
                "payroll_run_approved",
                extra={
                    "status": report.status.value,
                    "succeeded": report.succeeded,
                    "failed": report.failed,
                },
            )
        return report

    def _report(
        self,
        run_id: UUID,
        operation: BatchOperation,
        payroll_month: date | None,
        results: list[BatchItemResult],
        start: float,
        started_at,
        payslips: tuple[Payslip, ...] = (),
        approvals: tuple[PayslipApproval, ...] = (),
    ) -> BatchRunResult:
        succeeded = sum(1 for r in results if r.status == BatchItemStatus.SUCCEEDED)
        failed = sum(1 for r in results if r.status == BatchItemStatus.FAILED)
        skipped = sum(1 for r in results if r.status == BatchItemStatus.SKIPPED)
        return BatchRunResult(
            run_id=run_id,
            operation=operation,
            payroll_month=payroll_month,
            status=derive_job_status(succeeded, failed, skipped),
            total_items=len(results),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=tuple(results),
            payslips=payslips,
            approvals=approvals,
            started_at=started_at,
            completed_at=self._clock.now(),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
