class NotFoundError(ValueError):
    """Referenced account or entry does not exist or belongs to another user."""


class InvalidArgumentError(ValueError):
    """Caller passed arguments the engine cannot work with (e.g. month 13)."""
