"""Error types raised while building the lender ledger."""


class LedgerError(ValueError):
    """Base class for input problems that abort a run."""


class MalformedInputError(LedgerError):
    """A numeric field in a source record could not be parsed."""

    def __init__(self, *, address: str | None, source: str, field: str, raw: object) -> None:
        self.address = address
        self.source = source
        self.field = field
        self.raw = raw
        who = address if address is not None else "<no address>"
        super().__init__(f"{source}: record {who} has malformed {field}: {raw!r}")


class MissingReferenceDataError(LedgerError):
    """The vault reference snapshot lacks a required scalar."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"vault reference data is missing required field: {field}")
