"""Errors raised by the balance engine, assignment resolution and receipt parser."""


class ConfigurationError(Exception):
    """Roster cannot be used for settlement (no payer or several payers)."""


class InvalidAssignmentError(ValueError):
    """A member pick or custom split does not fit the item or the roster."""


class ReceiptParseError(Exception):
    """The vision model returned nothing usable for a receipt image."""


class ParserNotConfiguredError(ReceiptParseError):
    pass
