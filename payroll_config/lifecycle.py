"""
Status of a payroll configuration version.

    draft --publish--> published --newer version, same start date--> superseded

Settlement resolves only ``published`` versions.  Superseded rows stay in
the store so earlier payslips can be explained against the rates they used.
"""

from enum import Enum, unique

from payroll_kernel.exceptions import InvalidConfigTransitionError


@unique
class ConfigStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SUPERSEDED = "superseded"

    @property
    def is_terminal(self) -> bool:
        return not _NEXT[self]


_NEXT: dict[ConfigStatus, frozenset[ConfigStatus]] = {
    ConfigStatus.DRAFT: frozenset({ConfigStatus.PUBLISHED}),
    ConfigStatus.PUBLISHED: frozenset({ConfigStatus.SUPERSEDED}),
    ConfigStatus.SUPERSEDED: frozenset(),
}


def validate_transition(current: ConfigStatus, target: ConfigStatus) -> bool:
    return target in _NEXT[current]


def require_transition(current: ConfigStatus | str, target: ConfigStatus) -> ConfigStatus:
    """Return ``target`` if ``current`` may move to it, else raise ``InvalidConfigTransitionError``."""
    current = ConfigStatus(current)
    if not validate_transition(current, target):
        raise InvalidConfigTransitionError(current.value, target.value)
    return target
