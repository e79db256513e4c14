# lambdas/log_check/errors.py


class LogCheckError(Exception):
    """Base class for every failure that ends or degrades a log check run."""
    pass


class ConfigurationError(LogCheckError):
    """Raised when the settings, rules or mail transports are unusable."""
    pass


class RulesDirectoryError(ConfigurationError):
    """Raised when the rules directory cannot be resolved or read."""
    pass


class LogGroupNotFoundError(LogCheckError):
    """Raised when the configured log group does not exist."""
    def __init__(self, log_group: str):
        super().__init__(f"Log group '{log_group}' not found")
        self.log_group = log_group


class CloudWatchError(LogCheckError):
    """Raised when a CloudWatch Logs API call fails. The botocore error is kept as __cause__."""
    pass


class ReportDispatchError(LogCheckError):
    """Raised by a report sender when a chunk could not be delivered."""
    pass


class ReportStreamClosedError(LogCheckError):
    """Raised when lines are pushed to a report stream nobody reads anymore."""
    pass


class RunCancelledError(Exception):
    """
    Raised when the run was cancelled. Kept outside the LogCheckError
    hierarchy so callers can tell it apart from processing failures.
    """
    pass
