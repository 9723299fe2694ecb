"""Catalog metadata, query conditions and the plan node types produced by the planner."""

from __future__ import annotations

import enum
import struct
from dataclasses import InitVar, dataclass, field
from typing import Optional, Union


class RMDBError(Exception):
    """Base class for every error raised by the database."""


class InternalError(RMDBError):
    """An unexpected internal state was reached."""


class ColumnNotFoundError(RMDBError):
    def __init__(self, col_name: str) -> None:
        super().__init__(f"Column not found: {col_name}")
        self.col_name = col_name


class AmbiguousColumnError(RMDBError):
    def __init__(self, col_name: str) -> None:
        super().__init__(f"Ambiguous column: {col_name}")
        self.col_name = col_name


class IncompatibleTypeError(RMDBError):
    def __init__(self, lhs: str, rhs: str) -> None:
        super().__init__(f"Incompatible type error: lhs {lhs}, rhs {rhs}")
        self.lhs = lhs
        self.rhs = rhs


class TableNotFoundError(RMDBError):
    def __init__(self, tab_name: str) -> None:
        super().__init__(f"Table not found: {tab_name}")
        self.tab_name = tab_name


class IndexNotFoundError(RMDBError):
    def __init__(self, tab_name: str, col_names: list[str]) -> None:
        super().__init__(f"Index not found: {tab_name}({', '.join(col_names)})")
        self.tab_name = tab_name
        self.col_names = list(col_names)


class StringOverflowError(RMDBError):
    def __init__(self) -> None:
        super().__init__("String is too long")


class ColType(enum.Enum):
    INT = "INT"
    FLOAT = "FLOAT"
    STRING = "STRING"


class CompOp(enum.Enum):
    EQ = "="
    NE = "<>"
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="


class JoinType(enum.Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"


class SetKnobType(enum.Enum):
    ENABLE_NESTLOOP = "enable_nestloop"
    ENABLE_SORTMERGE = "enable_sortmerge"


class PlanTag(enum.IntEnum):
    INVALID = 1
    HELP = enum.auto()
    SHOW_TABLE = enum.auto()
    DESC_TABLE = enum.auto()
    CREATE_TABLE = enum.auto()
    DROP_TABLE = enum.auto()
    CREATE_INDEX = enum.auto()
    DROP_INDEX = enum.auto()
    SET_KNOB = enum.auto()
    INSERT = enum.auto()
    UPDATE = enum.auto()
    DELETE = enum.auto()
    SELECT = enum.auto()
    TRANSACTION_BEGIN = enum.auto()
    TRANSACTION_COMMIT = enum.auto()
    TRANSACTION_ABORT = enum.auto()
    TRANSACTION_ROLLBACK = enum.auto()
    SEQ_SCAN = enum.auto()
    INDEX_SCAN = enum.auto()
    NEST_LOOP = enum.auto()
    SORT_MERGE = enum.auto()
    SORT = enum.auto()
    PROJECTION = enum.auto()


_SWAPPED = {
    CompOp.EQ: CompOp.EQ,
    CompOp.NE: CompOp.NE,
    CompOp.LT: CompOp.GT,
    CompOp.GT: CompOp.LT,
    CompOp.LE: CompOp.GE,
    CompOp.GE: CompOp.LE,
}


def swap_op(op: CompOp) -> CompOp:
    """Return the operator that holds when the two operands are exchanged."""
    return _SWAPPED[op]


def coltype_to_str(col_type: ColType) -> str:
    """Name of a column type as shown to users."""
    return col_type.value


@dataclass(frozen=True)
class TabCol:
    tab_name: str = ""
    col_name: str = ""


@dataclass
class ColDef:
    name: str
    type: ColType
    len: int


@dataclass
class ColMeta:
    tab_name: str
    name: str
    type: ColType
    len: int
    offset: int = 0
    index: bool = False


@dataclass
class IndexMeta:
    tab_name: str
    cols: list[ColMeta]

    @property
    def col_num(self) -> int:
        return len(self.cols)

    @property
    def col_tot_len(self) -> int:
        return sum(col.len for col in self.cols)

    @property
    def col_names(self) -> list[str]:
        return [col.name for col in self.cols]


@dataclass
class TabMeta:
    name: str
    cols: list[ColMeta] = field(default_factory=list)
    indexes: list[IndexMeta] = field(default_factory=list)

    @property
    def record_size(self) -> int:
        if not self.cols:
            return 0
        last = self.cols[-1]
        return last.offset + last.len

    def get_col(self, name: str) -> ColMeta:
        """Return the column called ``name``."""
        for col in self.cols:
            if col.name == name:
                return col
        raise ColumnNotFoundError(name)

    def is_index(self, col_names: list[str]) -> bool:
        """Whether an index exists on exactly these columns, in this order."""
        return any(index.col_names == list(col_names) for index in self.indexes)

    def get_index_meta(self, col_names: list[str]) -> IndexMeta:
        """Return the index on exactly these columns, in this order."""
        for index in self.indexes:
            if index.col_names == list(col_names):
                return index
        raise IndexNotFoundError(self.name, list(col_names))


@dataclass
class Value:
    type: ColType
    val: Union[int, float, str]

    def raw(self, length: int) -> bytes:
        """Encode the value as a fixed-width field of ``length`` bytes."""
        if self.type is ColType.INT:
            if length != 4:
                raise InternalError("INT field must be 4 bytes long")
            return struct.pack("<i", int(self.val))
        if self.type is ColType.FLOAT:
            if length != 4:
                raise InternalError("FLOAT field must be 4 bytes long")
            return struct.pack("<f", float(self.val))
        data = str(self.val).encode("utf-8")
        if len(data) > length:
            raise StringOverflowError()
        return data.ljust(length, b"\0")


@dataclass
class Condition:
    lhs_col: TabCol
    op: CompOp
    rhs_val: Optional[Value] = None
    rhs_col: TabCol = field(default_factory=TabCol)

    @property
    def is_rhs_val(self) -> bool:
        return self.rhs_val is not None


@dataclass
class SetClause:
    lhs: TabCol
    rhs: Value


@dataclass(eq=False)
class Plan:
    tag: PlanTag


@dataclass(eq=False)
class ScanPlan(Plan):
    table: InitVar[TabMeta]
    conds: list[Condition] = field(default_factory=list)
    index_col_names: list[str] = field(default_factory=list)
    tab_name: str = field(init=False)
    cols: list[ColMeta] = field(init=False)
    len: int = field(init=False)
    fed_conds: list[Condition] = field(init=False)

    def __post_init__(self, table: TabMeta) -> None:
        self.tab_name = table.name
        self.cols = list(table.cols)
        self.len = table.record_size
        self.conds = list(self.conds)
        self.fed_conds = list(self.conds)
        self.index_col_names = list(self.index_col_names)


@dataclass(eq=False)
class JoinPlan(Plan):
    left: Plan
    right: Plan
    conds: list[Condition] = field(default_factory=list)
    type: JoinType = JoinType.INNER


@dataclass(eq=False)
class ProjectionPlan(Plan):
    subplan: Plan
    sel_cols: list[TabCol]


@dataclass(eq=False)
class SortPlan(Plan):
    subplan: Plan
    sel_col: TabCol
    is_desc: bool = False


@dataclass(eq=False)
class DMLPlan(Plan):
    subplan: Optional[Plan] = None
    tab_name: str = ""
    values: list[Value] = field(default_factory=list)
    conds: list[Condition] = field(default_factory=list)
    set_clauses: list[SetClause] = field(default_factory=list)


@dataclass(eq=False)
class DDLPlan(Plan):
    tab_name: str
    tab_col_names: list[str] = field(default_factory=list)
    cols: list[ColDef] = field(default_factory=list)


@dataclass(eq=False)
class OtherPlan(Plan):
    tab_name: str = ""


@dataclass(eq=False)
class SetKnobPlan(Plan):
    tag: PlanTag = field(default=PlanTag.SET_KNOB, init=False)
    knob_type: SetKnobType = SetKnobType.ENABLE_NESTLOOP
    bool_value: bool = False