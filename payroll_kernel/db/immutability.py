"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Settled payroll must be tamper-proof.  Once a payslip is approved its
figures have flowed into the accumulation ledger; once a configuration
version is published, payslips have been computed against it; once a debt
is approved, its installment schedule is what payroll deducts.  Changing
any of these in place would silently rewrite history.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check the rules:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | When Immutable                  | Permitted change
------------------------|---------------------------------|--------------------------------
AuditEvent              | ALWAYS                          | none
PayrollConfigVersion    | ALWAYS                          | status published -> superseded
Payslip                 | After status = approved         | status approved -> paid
DebtTxn                 | After status = approved         | none
DebtInstallment         | When parent debt is approved    | none

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from payroll_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup, after models import

Models are imported inline to avoid import cycles with the module packages.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _status_value(value) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)


def _status_before_update(target) -> str | None:
    """Status as it was in the database before the pending UPDATE."""
    history = get_history(target, "status")
    if history.deleted:
        return _status_value(history.deleted[0])
    if history.unchanged:
        return _status_value(history.unchanged[0])
    return _status_value(target.status)


def _changed_fields(target, allowed: frozenset[str] = frozenset()) -> list[str]:
    insp = inspect(target)
    changed = []
    for attr in insp.mapper.column_attrs:
        if attr.key in _AUDIT_FIELDS or attr.key in allowed:
            continue
        if insp.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# AuditEvent: always immutable
# =============================================================================


def _check_audit_event_immutability(mapper, connection, target):
    _block("AuditEvent", target, "UPDATE", "Audit events are immutable and cannot be modified")


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


# =============================================================================
# PayrollConfigVersion: append-only, may only be superseded
# =============================================================================


def _check_config_version_immutability(mapper, connection, target):
    """Allow published -> superseded; block every other change."""
    status_history = get_history(target, "status")
    if status_history.added:
        old = _status_value(status_history.deleted[0]) if status_history.deleted else None
        new = _status_value(status_history.added[0])
        if not (old == "published" and new == "superseded"):
            _block(
                "PayrollConfigVersion", target, "UPDATE",
                f"Configuration status cannot change from {old} to {new}",
                field="status",
            )

    changed = _changed_fields(target, allowed=frozenset({"status"}))
    if changed:
        _block(
            "PayrollConfigVersion", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on a stored configuration version",
            field=changed[0],
        )


def _check_config_version_delete(mapper, connection, target):
    _block(
        "PayrollConfigVersion", target, "DELETE",
        "Configuration versions are append-only and cannot be deleted",
    )


# =============================================================================
# Payslip: frozen once approved, except approved -> paid
# =============================================================================

_PAYSLIP_PAYMENT_FIELDS = frozenset({"status", "paid_at", "paid_by_id", "version"})


def _check_payslip_immutability(mapper, connection, target):
    """
    Block edits to approved or paid payslips.

    The approval itself (pending -> approved) is allowed because the status
    BEFORE the update is pending.  After that, only the payment transition
    may touch the row.
    """
    previous = _status_before_update(target)
    if previous == "pending":
        return

    if previous == "approved":
        new_status = _status_value(target.status)
        changed = _changed_fields(target, allowed=_PAYSLIP_PAYMENT_FIELDS)
        if not changed and new_status in ("approved", "paid"):
            return
        field = changed[0] if changed else "status"
        _block(
            "Payslip", target, "UPDATE",
            f"Cannot modify field '{field}' on an approved payslip",
            field=field,
        )

    changed = _changed_fields(target)
    if changed:
        _block(
            "Payslip", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on a {previous} payslip",
            field=changed[0],
        )


def _check_payslip_delete(mapper, connection, target):
    if _status_value(target.status) != "pending":
        _block("Payslip", target, "DELETE", "Settled payslips cannot be deleted")


# =============================================================================
# DebtTxn / DebtInstallment: frozen once approved
# =============================================================================


def _check_debt_txn_immutability(mapper, connection, target):
    previous = _status_before_update(target)
    if previous != "approved":
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "DebtTxn", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on an approved debt",
            field=changed[0],
        )


def _check_debt_txn_delete(mapper, connection, target):
    if _status_value(target.status) == "approved":
        _block("DebtTxn", target, "DELETE", "Approved debts cannot be deleted")


def _check_installment_immutability(mapper, connection, target):
    parent = target.debt_txn
    if parent is not None and _status_value(parent.status) == "approved":
        changed = _changed_fields(target)
        if changed:
            _block(
                "DebtInstallment", target, "UPDATE",
                "Installments of an approved debt cannot be modified",
                field=changed[0],
            )


def _check_installment_delete(mapper, connection, target):
    parent = target.debt_txn
    if parent is not None and _status_value(parent.status) == "approved":
        _block(
            "DebtInstallment", target, "DELETE",
            "Installments of an approved debt cannot be deleted",
        )


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from payroll_config.orm import PayrollConfigVersionModel
    from payroll_kernel.models.audit_event import AuditEvent
    from payroll_modules.debt.orm import DebtInstallmentModel, DebtTxnModel
    from payroll_modules.payslip.orm import PayslipModel

    return (
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (PayrollConfigVersionModel, "before_update", _check_config_version_immutability),
        (PayrollConfigVersionModel, "before_delete", _check_config_version_delete),
        (PayslipModel, "before_update", _check_payslip_immutability),
        (PayslipModel, "before_delete", _check_payslip_delete),
        (DebtTxnModel, "before_update", _check_debt_txn_immutability),
        (DebtTxnModel, "before_delete", _check_debt_txn_delete),
        (DebtInstallmentModel, "before_update", _check_installment_immutability),
        (DebtInstallmentModel, "before_delete", _check_installment_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Safe to call more than once.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
