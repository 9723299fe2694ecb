"""Semantic analysis: resolves column references and checks conditions against the catalog."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence, Union

from rmdb.plan import (
    AmbiguousColumnError,
    ColMeta,
    ColumnNotFoundError,
    CompOp,
    Condition,
    IncompatibleTypeError,
    InternalError,
    RMDBError,
    SetClause,
    TabCol,
    TableNotFoundError,
    TabMeta,
    ColType,
    Value,
    coltype_to_str,
)

Literal = Union[int, float, str, Value]


@dataclass(frozen=True)
class ColRef:
    """A column as written in a statement, optionally qualified by its table."""

    col_name: str
    tab_name: str = ""

    def to_tab_col(self) -> TabCol:
        return TabCol(tab_name=self.tab_name, col_name=self.col_name)


@dataclass
class BinaryExpr:
    """One comparison of a WHERE clause: ``lhs op rhs``."""

    lhs: ColRef
    op: Union[CompOp, str]
    rhs: Union[ColRef, Literal]


@dataclass
class SelectStmt:
    cols: list[ColRef]
    tabs: list[str]
    conds: list[BinaryExpr] = field(default_factory=list)
    order_by: Optional[ColRef] = None
    order_desc: bool = False

    @property
    def has_sort(self) -> bool:
        return self.order_by is not None


@dataclass
class DeleteStmt:
    tab_name: str
    conds: list[BinaryExpr] = field(default_factory=list)


@dataclass
class InsertStmt:
    tab_name: str
    vals: list[Literal] = field(default_factory=list)


@dataclass
class UpdateStmt:
    tab_name: str
    set_clauses: list[tuple[str, Literal]] = field(default_factory=list)
    conds: list[BinaryExpr] = field(default_factory=list)


@dataclass
class Query:
    """The analysed form of a statement, ready for planning."""

    parse: Any = None
    conds: list[Condition] = field(default_factory=list)
    cols: list[TabCol] = field(default_factory=list)
    tables: list[str] = field(default_factory=list)
    set_clauses: list[SetClause] = field(default_factory=list)
    values: list[Value] = field(default_factory=list)


class Catalog:
    """The set of tables known to the database."""

    def __init__(self, tables: Sequence[TabMeta] = ()) -> None:
        self._tables: dict[str, TabMeta] = {}
        for table in tables:
            self.add_table(table)

    def add_table(self, table: TabMeta) -> None:
        """Register a table; its name must not be taken."""
        if table.name in self._tables:
            raise RMDBError(f"Table already exists: {table.name}")
        self._tables[table.name] = table

    def get_table(self, name: str) -> TabMeta:
        """Return the table called ``name``."""
        try:
            return self._tables[name]
        except KeyError:
            raise TableNotFoundError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._tables


def check_column(all_cols: Sequence[ColMeta], target: TabCol) -> TabCol:
    """Resolve ``target`` among ``all_cols``, inferring its table when missing."""
    if not target.tab_name:
        tab_name = ""
        for col in all_cols:
            if col.name == target.col_name:
                if tab_name:
                    raise AmbiguousColumnError(target.col_name)
                tab_name = col.tab_name
        if not tab_name:
            raise ColumnNotFoundError(target.col_name)
        return replace(target, tab_name=tab_name)
    if not any(col.tab_name == target.tab_name and col.name == target.col_name for col in all_cols):
        raise ColumnNotFoundError(f"{target.tab_name}.{target.col_name}")
    return target


def convert_comp_op(op: Union[CompOp, str]) -> CompOp:
    """Map an operator as written (``=``, ``<>``, ``<``, ...) to a :class:`CompOp`."""
    if isinstance(op, CompOp):
        return op
    try:
        return CompOp(op)
    except ValueError:
        raise InternalError(f"Unexpected comparison operator: {op!r}") from None


def _convert_value(val: Literal) -> Value:
    if isinstance(val, Value):
        return Value(val.type, val.val)
    if isinstance(val, bool):
        raise InternalError("Unexpected sv value type")
    if isinstance(val, int):
        return Value(ColType.INT, val)
    if isinstance(val, float):
        return Value(ColType.FLOAT, val)
    if isinstance(val, str):
        return Value(ColType.STRING, val)
    raise InternalError("Unexpected sv value type")


class Analyzer:
    """Checks statements against a catalog and turns them into queries."""

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def analyze(self, stmt: Any) -> Query:
        """Analyse ``stmt`` and return the resulting :class:`Query`."""
        query = Query(parse=stmt)
        if isinstance(stmt, SelectStmt):
            query.tables = list(stmt.tabs)
            all_cols = self._all_cols(query.tables)
            if not stmt.cols:
                query.cols = [TabCol(col.tab_name, col.name) for col in all_cols]
            else:
                query.cols = [check_column(all_cols, ref.to_tab_col()) for ref in stmt.cols]
            query.conds = self._check_clause(query.tables, self._get_clause(stmt.conds))
        elif isinstance(stmt, UpdateStmt):
            table = self.catalog.get_table(stmt.tab_name)
            for col_name, raw_val in stmt.set_clauses:
                col = table.get_col(col_name)
                val = _convert_value(raw_val)
                if col.type is not val.type:
                    raise IncompatibleTypeError(coltype_to_str(col.type), coltype_to_str(val.type))
                val.raw(col.len)
                query.set_clauses.append(SetClause(TabCol(stmt.tab_name, col_name), val))
            query.conds = self._check_clause([stmt.tab_name], self._get_clause(stmt.conds))
        elif isinstance(stmt, DeleteStmt):
            query.conds = self._check_clause([stmt.tab_name], self._get_clause(stmt.conds))
        elif isinstance(stmt, InsertStmt):
            query.values = [_convert_value(val) for val in stmt.vals]
        return query

    def _all_cols(self, tab_names: Sequence[str]) -> list[ColMeta]:
        return [col for name in tab_names for col in self.catalog.get_table(name).cols]

    @staticmethod
    def _get_clause(exprs: Sequence[BinaryExpr]) -> list[Condition]:
        conds = []
        for expr in exprs:
            op = convert_comp_op(expr.op)
            lhs = expr.lhs.to_tab_col()
            if isinstance(expr.rhs, ColRef):
                conds.append(Condition(lhs_col=lhs, op=op, rhs_col=expr.rhs.to_tab_col()))
            else:
                conds.append(Condition(lhs_col=lhs, op=op, rhs_val=_convert_value(expr.rhs)))
        return conds

    def _check_clause(self, tab_names: Sequence[str], conds: list[Condition]) -> list[Condition]:
        all_cols = self._all_cols(tab_names)
        checked = []
        for cond in conds:
            cond = replace(cond, lhs_col=check_column(all_cols, cond.lhs_col))
            if not cond.is_rhs_val:
                cond = replace(cond, rhs_col=check_column(all_cols, cond.rhs_col))
            lhs_col = self.catalog.get_table(cond.lhs_col.tab_name).get_col(cond.lhs_col.col_name)
            if cond.is_rhs_val:
                rhs_type = cond.rhs_val.type
            else:
                rhs_tab = self.catalog.get_table(cond.rhs_col.tab_name)
                rhs_type = rhs_tab.get_col(cond.rhs_col.col_name).type
            if lhs_col.type is not rhs_type:
                raise IncompatibleTypeError(coltype_to_str(lhs_col.type), coltype_to_str(rhs_type))
            if cond.is_rhs_val:
                cond.rhs_val.raw(lhs_col.len)
            checked.append(cond)
        return checked