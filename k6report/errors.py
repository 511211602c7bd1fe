class ReportError(Exception):
    """Base class for errors raised by k6report."""


class FeedOpenError(ReportError):
    """The input feed could not be opened at all."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot open feed {path}: {reason}")


class ConfigError(ReportError):
    pass
