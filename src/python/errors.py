class ConfigurationError(ValueError):
    """Invalid run parameters. Raised before any download, read or training starts."""


class DatasetUnavailableError(RuntimeError):
    """A dataset or query file is missing and could not be downloaded."""


class InvariantViolation(AssertionError):
    """A programming error, e.g. a probe tuple whose length does not match the cascade."""
