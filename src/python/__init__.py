from .errors import ConfigurationError, DatasetUnavailableError, InvariantViolation  # noqa: F401

__version__ = "0.0.1"
