class SegmentConfigurationError(ValueError):
    """Raised when a provider's rule file does not hold a valid array of rules."""

    def __init__(self, path, message):
        super().__init__(f"{path}: {message}")
        self.path = path
