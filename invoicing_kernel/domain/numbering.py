"""
Document number formatting and parsing.

Format: ``{serial_prefix}{4-digit year}{9-digit zero-padded sequence}``,
e.g. ``EMA2026000000042``.  The voucher number sent to the gateway is the
same string with the serial prefix stripped (``2026000000042``).
"""

SEQUENCE_WIDTH = 9
MAX_SEQUENCE = 10**SEQUENCE_WIDTH - 1


class MalformedDocumentNumber(ValueError):
    """The suffix of a stored document number is not a 9-digit sequence."""

    def __init__(self, document_number: str, reason: str):
        self.document_number = document_number
        self.reason = reason
        super().__init__(f"Malformed document number {document_number!r}: {reason}")


def series_prefix(serial_prefix: str, year: int) -> str:
    """The leading text shared by every number in one series."""
    return f"{serial_prefix}{year:04d}"


def format_document_number(serial_prefix: str, year: int, sequence: int) -> str:
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise ValueError(f"Sequence {sequence} out of range for {serial_prefix}{year}")
    return f"{series_prefix(serial_prefix, year)}{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(document_number: str, serial_prefix: str, year: int) -> int:
    """
    Extract the numeric sequence from a document number of the given series.

    Raises:
        MalformedDocumentNumber: if the number does not belong to the series
            or its suffix is not exactly nine digits.
    """
    head = series_prefix(serial_prefix, year)
    if not document_number.startswith(head):
        raise MalformedDocumentNumber(document_number, f"does not start with {head}")
    suffix = document_number[len(head):]
    if len(suffix) != SEQUENCE_WIDTH or not suffix.isdigit():
        raise MalformedDocumentNumber(document_number, f"suffix {suffix!r} is not {SEQUENCE_WIDTH} digits")
    return int(suffix)


def voucher_number(document_number: str, serial_prefix: str) -> str:
    if not document_number.startswith(serial_prefix):
        raise ValueError(f"{document_number} does not carry prefix {serial_prefix}")
    return document_number[len(serial_prefix):]
