"""POSTAI error hierarchy — all application exceptions defined here."""


class PostAIError(Exception):
    """Base error for all POSTAI exceptions."""


class ParseError(PostAIError):
    """API description is unreachable, malformed, or missing its info block."""


class UnsupportedSpecError(ParseError):
    """Document carries neither a `swagger` nor an `openapi` discriminator."""


class MissingBaseUrlError(PostAIError):
    """A relative path was given and no base URL is known."""


class NotFoundError(PostAIError):
    """Named document does not exist in the store or registry."""


class StorageError(PostAIError):
    """Document store read/write failure."""


class TransportError(PostAIError):
    """Connection-level HTTP failure (timeout, DNS, refusal)."""

    def __init__(self, message: str, code: str = "EREQUEST", name: str = "TransportError") -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.name = name


class ClassificationError(PostAIError):
    """Text-completion reply could not be parsed into the expected shape."""

    def __init__(self, message: str, raw_reply: str = "") -> None:
        super().__init__(message)
        self.raw_reply = raw_reply
