class LedgerlensError(Exception):
    """Base class for errors raised by ledgerlens."""


class CsvFormatError(LedgerlensError, ValueError):
    """Uploaded statement is empty or lacks a required header."""


class PeriodSelectionError(LedgerlensError, ValueError):
    """Selector values do not fit the requested scope."""


class StoreUnavailableError(LedgerlensError, RuntimeError):
    """The record store (or identity backend) could not be reached."""


class ForecastBusyError(LedgerlensError, RuntimeError):
    """A forecast was requested while another one is still computing."""
