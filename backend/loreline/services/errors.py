"""Service-level exceptions beyond the ValueError/LookupError convention."""


class ConflictError(ValueError):
    """The write is well-formed but clashes with existing data (HTTP 409)."""
