"""Error types raised by the substrate."""


class UnknownDimensionError(ValueError):
    """A Self-State mutation named a dimension that does not exist."""

    def __init__(self, dimension: str) -> None:
        super().__init__(f"Unknown self-state dimension: {dimension!r}")
        self.dimension = dimension


class SnapshotValidationError(ValueError):
    """A rehydration snapshot was incomplete or out of range."""


class EngineRegistrationError(ValueError):
    """An engine id was registered twice."""
