"""Storage error taxonomy shared by both backends."""


class StorageError(Exception):
    """Base class for persistence failures."""


class DuplicateKey(StorageError):
    """A uniqueness constraint rejected the write."""

    def __init__(self, table: str, column: str) -> None:
        super().__init__(f"Duplicate value for {table}.{column}")
        self.table = table
        self.column = column


class MalformedStatement(StorageError):
    """The statement template or its parameters are invalid."""


class ConnectionUnavailable(StorageError):
    """The storage backend cannot be reached."""


class StorageFault(StorageError):
    """Unexpected backend failure, carrying the original backend message."""

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message if detail is None else f"{message}: {detail}")
        self.detail = detail
