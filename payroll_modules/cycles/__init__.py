"""Branch-scoped bonus and salary-raise cycles."""

from payroll_modules.cycles.models import CYCLE_TRANSITIONS, CycleKind, CycleStatus, PayrollCycle
from payroll_modules.cycles.service import CycleService

__all__ = ["CYCLE_TRANSITIONS", "CycleKind", "CycleService", "CycleStatus", "PayrollCycle"]
