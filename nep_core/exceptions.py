"""Exceptions raised by the NEP evaluator and the model-file reader."""


class NEPError(Exception):
    """Base class for NEP errors."""


class NEPFileError(NEPError, ValueError):
    """The model file is missing, unreadable, malformed or inconsistent."""


class NeighborListError(NEPError, ValueError):
    """Inputs handed to ``compute()`` do not match the configured model or atom count."""
