from typing import NamedTuple

MICROSOFT_SYMBOL_STORE = "https://msdl.microsoft.com/download/symbols"
MIN_PDB_NAME_LEN = 4


class Error(Exception):
    """Base exception for symbolfetch."""


class DirectoryUnreadable(Error):
    """The folder holding the binaries cannot be listed."""


class MalformedImage(Error):
    """The file is not a PE image or carries no usable CodeView record."""


class NameDecodeFailure(MalformedImage):
    """The PDB name in the CodeView record is not terminated or not valid UTF-8."""


class NameTooShort(MalformedImage):
    """The PDB name in the CodeView record is too short to be real."""


class DownloadExhausted(Error):
    """Every attempt to fetch a PDB failed at the transport level."""

    def __init__(self, url, attempts, last_error):
        super().__init__(f"failed to fetch {url} after {attempts} attempts: {last_error}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class SymbolNotFound(Error):
    """The symbol server answered with a client error, usually 404."""

    def __init__(self, url, status_code):
        super().__init__(f"{url} returned HTTP {status_code}")
        self.url = url
        self.status_code = status_code


class PdbIdentifier(NamedTuple):
    name: str
    guid: str
    age: int

    @property
    def symbol_id(self):
        return f"{self.guid}{self.age}"

    def relative_path(self):
        return f"{self.name}/{self.symbol_id}/{self.name}"

    def url(self, symbol_store=MICROSOFT_SYMBOL_STORE):
        return f"{symbol_store.rstrip('/')}/{self.relative_path()}"
