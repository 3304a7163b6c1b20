"""
Common base for session-bound payroll services.

Services flush, they never commit or roll back.  Whoever opened the
session (``session_scope()``, the run settler, a test fixture) decides
the transaction outcome; work that must be all-or-nothing inside a larger
transaction uses ``session.begin_nested()``.
"""

from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from payroll_kernel.db.base import Base
from payroll_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(Generic[ModelType]):
    """Holds the session and the clock used for every timestamp a service writes."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
