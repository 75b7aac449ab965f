class VolumeBotError(Exception):
    """Base class for every error the bot reports back to the chat."""


class ValidationError(VolumeBotError, ValueError):
    pass


class MissingResourceError(VolumeBotError):
    """No wallet or keypairs for the user yet."""


class TransactionTooLargeError(VolumeBotError):
    def __init__(self, size: int, index: int | None = None):
        self.size = size
        self.index = index
        label = f"Tx {index + 1}" if index is not None else "Tx"
        super().__init__(f"{label} too big ({size} bytes)")


class MissingSignerError(VolumeBotError):
    pass


class RpcError(VolumeBotError):
    pass


class BundleSubmissionError(VolumeBotError):
    pass


class NoLeaderError(BundleSubmissionError):
    """Relay dropped the bundle because no Jito leader is scheduled soon."""

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__("Bundle dropped, no connected leader up soon. Try again in a few seconds.")
