"""Exceptions raised at the pipeline's configuration and input boundaries."""


class OptimizerError(Exception):
    pass


class ConfigError(OptimizerError, ValueError):
    """Unknown or malformed preset configuration. Always a caller bug."""


class InvalidSourceError(OptimizerError, ValueError):
    """Source reference is malformed or not allowed. Raised before any I/O."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{reason}: {source}")
        self.source = source
        self.reason = reason
