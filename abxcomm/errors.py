"""
abxcomm/errors.py

Exception types raised by the abundance pipeline.

Every error is local to one pipeline run: the input is static, so the fix is
always to correct the data or the arguments and rerun.
"""


class AbxcommError(Exception):
    """Base class for all abxcomm errors."""


class SchemaError(AbxcommError, ValueError):
    """Missing, malformed or out-of-domain columns in an input table."""

    def __init__(self, source, column, message):
        self.source = source
        self.column = column
        self.reason = message
        super().__init__(f"{source}: column '{column}': {message}")


class UndefinedResultError(AbxcommError, ValueError):
    """A computation has no defined value for its input (zero depth, too few points)."""


class AmbiguousPivotError(AbxcommError, ValueError):
    """Identifying columns plus the pivot column do not form a unique key."""


class FamilyLookupError(AbxcommError, KeyError):
    """An OTU has no resolvable family, or more than one."""

    def __str__(self):
        # KeyError repr-quotes its message by default
        return str(self.args[0]) if self.args else ""


class CompletionTooLargeError(AbxcommError, ValueError):
    """The completed cross product would exceed the configured row bound."""
