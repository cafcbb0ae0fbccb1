class LedgerError(Exception):
    pass


class InvalidAmount(LedgerError):
    pass


class CustomerNotFound(LedgerError):
    pass


class CourseNotFound(LedgerError):
    pass


class TeacherNotFound(LedgerError):
    pass


class CategoryNotFound(LedgerError):
    pass


class AlreadyOwned(LedgerError):
    pass


class InsufficientBalance(LedgerError):
    pass


class ConcurrencyConflict(LedgerError):
    pass


class EmailAlreadyRegistered(LedgerError):
    pass


class StoreUnavailable(LedgerError):
    """The document store could not be reached. Nothing was written; retry is safe."""


class StoreError(Exception):
    def __init__(self, collection: str, key: str, message: str = ""):
        self.collection = collection
        self.key = key
        super().__init__(message or f"{collection}/{key}")


class DocumentExists(StoreError):
    pass


class DocumentNotFound(StoreError):
    pass


class PreconditionFailed(StoreError):
    def __init__(self, collection: str, key: str, field: str):
        self.field = field
        super().__init__(collection, key, f"{collection}/{key}: precondition on '{field}' failed")
