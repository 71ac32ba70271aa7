from enum import Enum
from typing import Any, Dict, List, Tuple
from dataclasses import dataclass, field, asdict

# 计数失败时使用的哨兵值
COUNT_UNAVAILABLE = -1

class TableState(str, Enum):
    PENDING = "pending"
    INTROSPECTING = "introspecting"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"

@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    declared_type: str
    nullable: bool = True
    ordinal: int = 0
    is_primary: bool = False
    is_identity: bool = False

@dataclass(frozen=True)
class TableDescriptor:
    table_name: str
    columns: Tuple[ColumnDescriptor, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    @property
    def primary_key(self) -> List[str]:
        return [col.name for col in self.columns if col.is_primary]

    def has_column(self, name: str) -> bool:
        return any(col.name == name for col in self.columns)

@dataclass
class TableCompareResult:
    table_name: str
    local_count: int
    remote_count: int
    error_message: str = ""

    @property
    def diverged(self) -> bool:
        return self.local_count != self.remote_count

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

@dataclass
class SyncResult:
    table_name: str
    synced_count: int = 0
    success: bool = False
    error_message: str = ""
    error_kind: str = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    error_kind: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
