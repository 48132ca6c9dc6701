class MigrationError(Exception):
    """Base exception for schema provisioning and data migration errors."""

    pass


class MappingError(MigrationError):
    pass


class NotMappedError(MappingError):
    def __init__(self, collection: str):
        self.collection = collection
        super().__init__(f"Collection '{collection}' has no destination table")


class ExtractionError(MigrationError):
    def __init__(self, collection: str, message: str):
        self.collection = collection
        self.message = message
        super().__init__(f"Failed to read collection '{collection}': {message}")


class TransformDropError(MigrationError):
    """A single record could not be converted into a destination row."""

    def __init__(self, source_id: str | None, reason: str):
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"{source_id or '<unknown>'}: {reason}")


class BatchInsertError(MigrationError):
    def __init__(self, table: str, batch_number: int, size: int, message: str):
        self.table = table
        self.batch_number = batch_number
        self.size = size
        self.message = message
        super().__init__(f"Batch {batch_number} ({size} records) into '{table}' failed: {message}")


class DDLError(MigrationError):
    def __init__(self, table: str, message: str):
        self.table = table
        self.message = message
        super().__init__(f"DDL for '{table}' failed: {message}")
