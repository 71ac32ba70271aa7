class SyncError(Exception):
    """同步过程中所有可预期错误的基类"""
    kind = "SyncError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message

class UnsupportedEngine(SyncError):
    kind = "UnsupportedEngine"

class DBConnectionError(SyncError):
    kind = "ConnectionError"

class SchemaError(SyncError):
    kind = "SchemaError"

class QueryError(SyncError):
    kind = "QueryError"

class WriteError(SyncError):
    kind = "WriteError"

class CancellationError(SyncError):
    kind = "CancellationError"
