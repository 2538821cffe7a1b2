__all__ = [
    "PurgeError",
    "ConfigError",
    "FormatError",
    "PurgeConnectionError",
    "InvalidIdentifierError",
    "ExecutionError",
]


class PurgeError(Exception):
    """Base class for every failure that ends a purge run."""

    exit_code = 1
    show_usage = False


class ConfigError(PurgeError):
    """Missing or conflicting command line options."""

    show_usage = True


class FormatError(PurgeError):
    """Date/time cutoff is not a valid "yyyy-mm-dd hh:mm:ss" value."""

    show_usage = True


class PurgeConnectionError(PurgeError):
    """The MongoDB instance could not be reached."""


class InvalidIdentifierError(PurgeError):
    """The supplied cutoff is not a usable ObjectId."""

    show_usage = True


class ExecutionError(PurgeError):
    """The deletion run itself failed."""


# Importable by name only; left out of __all__ so star imports keep the builtin.
ConnectionError = PurgeConnectionError
