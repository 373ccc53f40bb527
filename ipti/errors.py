class IptiError(Exception):
    """Base class for ipti-specific errors."""


# Input format
class CsvFormatError(IptiError):
    pass


class MissingHeaderError(CsvFormatError):
    pass


class FieldCountError(CsvFormatError):
    pass


# Values that cannot be flattened back to CSV
class UnsupportedValueError(IptiError):
    pass


class MissingColumnError(IptiError):
    pass


# Identifiers
class IdentifierError(IptiError):
    pass


class InvalidNameError(IptiError):
    pass


# Archive / block storage
class StorageError(IptiError):
    pass


class CarFormatError(StorageError):
    pass


class BlockNotFoundError(StorageError):
    pass


class BlockHashMismatch(StorageError):
    pass


class RootSizeMismatchError(StorageError):
    pass


class StoreFinalizedError(StorageError):
    pass


class UncommittedArchiveError(StorageError):
    pass


class DuplicateFieldError(CsvFormatError):
    pass
