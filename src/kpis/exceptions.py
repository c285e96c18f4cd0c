"""Error taxonomy of the KPI engine."""


class KpiError(Exception):
    """Base class for every error raised by the KPI engine."""


class ValidationError(KpiError, ValueError):
    """Malformed input (empty unit, negative or non-numeric target/value)."""


class InvariantViolation(KpiError, ValueError):
    """A write would break minimum <= standard <= stretch."""


class PersistenceError(KpiError):
    """The underlying record store failed. Never retried by the engine itself."""


class NotFoundError(KpiError, LookupError):
    """A metric id that does not (or no longer) exist."""
