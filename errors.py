class LedgerError(Exception):
    """Base class for every failure the budget engine reports to callers."""


class Unauthorized(LedgerError):
    pass


class ValidationError(LedgerError, ValueError):
    pass


class NotFound(LedgerError, ValueError):
    pass


class RepositoryError(LedgerError):
    """The storage collaborator failed; the message is safe to log, not to show."""


class BudgetRowExists(RepositoryError):
    """A budget row for (user, category, month) was inserted concurrently."""


class ComputationError(LedgerError):
    pass
