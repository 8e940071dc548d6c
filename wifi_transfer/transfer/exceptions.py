from wifi_transfer.exceptions import (
    BaseTransferError,
)


class TransferError(BaseTransferError):
    """Raised when there is an error in the transfer layer."""


class ListenError(TransferError):
    pass


class OpenConnectionError(TransferError):
    pass


class SourceFileError(TransferError):
    """The file being sent could not be opened or read."""


class ProtocolError(TransferError):
    pass


class UnexpectedStatusError(ProtocolError):
    def __init__(self, status: int, reason: str = "") -> None:
        self.status = status
        self.reason = reason
        super().__init__(f"Sender answered with status {status} {reason}".rstrip())


class TransferIOError(TransferError):
    pass


class IncompleteTransferError(TransferIOError):
    """Fewer bytes were received than the sender declared."""

    def __init__(self, received: int, expected: int) -> None:
        self.received = received
        self.expected = expected
        super().__init__(
            f"Connection closed after {received} of {expected} bytes"
        )
