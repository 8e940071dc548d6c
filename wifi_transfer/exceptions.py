class BaseTransferError(Exception):
    pass


class ValidationError(BaseTransferError):
    """Raised when something does not pass a validation check."""


class InterruptedTransferError(BaseTransferError):
    """The operator terminated the process before the transfer finished."""

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}")
