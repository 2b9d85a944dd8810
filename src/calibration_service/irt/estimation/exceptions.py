class DegenerateDistributionError(Exception):
    """The latent distribution cannot be standardized."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)
