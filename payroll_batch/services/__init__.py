"""payroll_batch.services -- run settlement with per-employee SAVEPOINTs."""

from payroll_batch.services.settlement import PayrollRunSettler

__all__ = ["PayrollRunSettler"]
