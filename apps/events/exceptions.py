"""Exceptions raised while validating signal events."""


class EventValidationError(Exception):
    """A normalized event failed envelope or payload validation.

    The event is dropped; the raw source record is retained for diagnosis.
    """

    def __init__(self, reason: str, field: str = "") -> None:
        self.reason = reason
        self.field = field
        super().__init__(f"{field}: {reason}" if field else reason)
