"""
Error hierarchy for xtraship.

Every failure is one of two kinds:
- RetryableError: only raised while acquiring the replica connection
- FatalError: everything else; terminates the process with a non-zero status
"""


class FatalError(Exception):
    """Raised when the backup process cannot continue."""
    pass


class RetryableError(Exception):
    """Raised when an operation may succeed if attempted again."""
    pass


class ConfigError(FatalError):
    """Raised when required configuration is missing or malformed."""
    pass
