"""Exceptions raised by the scheduling core.

Everything derives from ``ValueError`` so callers that already guard
computations with ``except ValueError`` keep working. A raised error always
means nothing was changed.
"""


class SchedulingError(ValueError):
    """Base class for scheduling failures."""


class InvalidCycleParameters(SchedulingError):
    """Billing-cycle inputs cannot produce a due date."""


class InvalidRecurringRule(SchedulingError):
    """A recurring rule is malformed and cannot be expanded."""


class NotARecurringInstance(SchedulingError):
    """A series edit was requested on a one-off event."""


class ScopeNotPermitted(SchedulingError):
    """The requested edit scope is not allowed for this instance."""


class PlanConflict(SchedulingError):
    """The ledger cannot apply an edit plan against its current state."""
