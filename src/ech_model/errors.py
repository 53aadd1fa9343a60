from __future__ import annotations


class EchError(Exception):
    """Base class of every failure raised while building an .ech export."""


class ConfigError(EchError, ValueError):
    pass


class NotFoundError(EchError, LookupError):
    pass


class AlreadyBoundError(EchError, ValueError):
    pass


class RenameExhaustedError(EchError, RuntimeError):
    pass


class UnsupportedError(EchError, NotImplementedError):
    pass


class InconsistentModelError(EchError, ValueError):
    pass
