"""Kernel services: sequences and the audit chain."""

from payroll_kernel.services.auditor_service import AuditorService, AuditTrace
from payroll_kernel.services.base import BaseService
from payroll_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "AuditorService",
    "AuditTrace",
    "BaseService",
    "SequenceCounter",
    "SequenceService",
]
