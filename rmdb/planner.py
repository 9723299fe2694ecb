"""Query planner: turns analysed queries into trees of plan nodes."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Union

from rmdb.analyze import Catalog, DeleteStmt, InsertStmt, Query, SelectStmt, UpdateStmt
from rmdb.plan import (
    ColDef,
    ColMeta,
    ColType,
    CompOp,
    Condition,
    DDLPlan,
    DMLPlan,
    InternalError,
    JoinPlan,
    Plan,
    PlanTag,
    ProjectionPlan,
    RMDBError,
    ScanPlan,
    SortPlan,
    TabCol,
    swap_op,
)


@dataclass
class CreateTable:
    """``CREATE TABLE tab_name (fields...)``."""

    tab_name: str
    fields: list[ColDef] = field(default_factory=list)


@dataclass
class DropTable:
    """``DROP TABLE tab_name``."""

    tab_name: str


@dataclass
class CreateIndex:
    """``CREATE INDEX tab_name (col_names...)``."""

    tab_name: str
    col_names: list[str] = field(default_factory=list)


@dataclass
class DropIndex:
    """``DROP INDEX tab_name (col_names...)``."""

    tab_name: str
    col_names: list[str] = field(default_factory=list)


def _interp_type(col_type: Union[ColType, str]) -> ColType:
    if isinstance(col_type, ColType):
        return col_type
    if isinstance(col_type, str):
        try:
            return ColType(col_type.upper())
        except ValueError:
            pass
    raise InternalError(f"Unexpected column type: {col_type!r}")


def _swapped(cond: Condition) -> Condition:
    return replace(cond, lhs_col=cond.rhs_col, rhs_col=cond.lhs_col, op=swap_op(cond.op))


def pop_conds(conds: list[Condition], tab_name: str) -> list[Condition]:
    """Remove from ``conds`` and return those that a scan of ``tab_name`` can evaluate alone."""
    solved: list[Condition] = []
    kept: list[Condition] = []
    for cond in conds:
        own_value = cond.lhs_col.tab_name == tab_name and cond.is_rhs_val
        same_table = cond.lhs_col.tab_name == cond.rhs_col.tab_name
        (solved if own_value or same_table else kept).append(cond)
    conds[:] = kept
    return solved


def push_conds(cond: Condition, plan: Plan) -> int:
    """Push a join condition down into the lowest join of ``plan`` that covers both sides.

    Returns 1 or 2 when a scan matches the left or right column of ``cond``,
    3 once the condition has been attached to a join, and 0 otherwise.
    """
    if isinstance(plan, ScanPlan):
        if plan.tab_name == cond.lhs_col.tab_name:
            return 1
        if plan.tab_name == cond.rhs_col.tab_name:
            return 2
        return 0
    if isinstance(plan, JoinPlan):
        left_res = push_conds(cond, plan.left)
        if left_res == 3:
            return 3
        right_res = push_conds(cond, plan.right)
        if right_res == 3:
            return 3
        if left_res == 0 or right_res == 0:
            return left_res + right_res
        if left_res == 2:
            cond = _swapped(cond)
        plan.conds.append(cond)
        return 3
    return 0


def pop_scan(
    scanned: list[bool], table: str, joined_tables: list[str], plans: Sequence[Plan]
) -> Optional[Plan]:
    """Find the scan of ``table``, mark it as used and record the table as joined."""
    for i, plan in enumerate(plans):
        if isinstance(plan, ScanPlan) and plan.tab_name == table:
            scanned[i] = True
            joined_tables.append(plan.tab_name)
            return plan
    return None


class Planner:
    """Builds execution plans for DDL and DML statements."""

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog
        self.enable_nestedloop_join = True
        self.enable_sortmerge_join = False

    def set_enable_nestedloop_join(self, value: bool) -> None:
        self.enable_nestedloop_join = bool(value)

    def set_enable_sortmerge_join(self, value: bool) -> None:
        self.enable_sortmerge_join = bool(value)

    def get_index_cols(self, tab_name: str, conds: Sequence[Condition]) -> Optional[list[str]]:
        """Columns of an index matched exactly by the equality conditions on ``tab_name``.

        Returns ``None`` when no index matches.
        """
        names = [
            cond.lhs_col.col_name
            for cond in conds
            if cond.is_rhs_val and cond.op is CompOp.EQ and cond.lhs_col.tab_name == tab_name
        ]
        if self.catalog.get_table(tab_name).is_index(names):
            return names
        return None

    def _scan_plan(self, tab_name: str, conds: Sequence[Condition]) -> ScanPlan:
        index_cols = self.get_index_cols(tab_name, conds)
        table = self.catalog.get_table(tab_name)
        if index_cols is None:
            return ScanPlan(PlanTag.SEQ_SCAN, table, list(conds), [])
        return ScanPlan(PlanTag.INDEX_SCAN, table, list(conds), index_cols)

    def _first_join_tag(self) -> PlanTag:
        if self.enable_nestedloop_join:
            return PlanTag.NEST_LOOP
        if self.enable_sortmerge_join:
            return PlanTag.SORT_MERGE
        raise RMDBError("No join executor selected!")

    def make_one_rel(self, query: Query) -> Plan:
        """Build the scan and join tree covering every table of ``query``."""
        tables = list(query.tables)
        if not tables:
            raise InternalError("Query has no tables")
        remaining = list(query.conds)
        scans: list[Plan] = [self._scan_plan(name, pop_conds(remaining, name)) for name in tables]
        if len(tables) == 1:
            return scans[0]

        scanned = [False] * len(tables)
        joined: list[str] = []
        if remaining:
            first, *rest = remaining
            left = pop_scan(scanned, first.lhs_col.tab_name, joined, scans)
            right = pop_scan(scanned, first.rhs_col.tab_name, joined, scans)
            if left is None or right is None:
                raise InternalError("Join condition refers to an unknown table")
            join: Plan = JoinPlan(self._first_join_tag(), left, right, [first])
            for cond in rest:
                left = right = None
                reverse = False
                if cond.lhs_col.tab_name not in joined:
                    left = pop_scan(scanned, cond.lhs_col.tab_name, joined, scans)
                if cond.rhs_col.tab_name not in joined:
                    right = pop_scan(scanned, cond.rhs_col.tab_name, joined, scans)
                    reverse = True
                if left is not None and right is not None:
                    inner = JoinPlan(PlanTag.NEST_LOOP, left, right, [cond])
                    join = JoinPlan(PlanTag.NEST_LOOP, inner, join, [])
                elif left is not None or right is not None:
                    if reverse:
                        cond = _swapped(cond)
                        left = right
                    join = JoinPlan(PlanTag.NEST_LOOP, left, join, [cond])
                else:
                    push_conds(cond, join)
        else:
            join = scans[0]
            scanned[0] = True

        for plan, used in zip(scans, scanned):
            if not used:
                join = JoinPlan(PlanTag.NEST_LOOP, plan, join, [])
        return join

    def generate_sort_plan(self, query: Query, plan: Plan) -> Plan:
        """Wrap ``plan`` in a sort node when the statement has ORDER BY."""
        stmt = query.parse
        if not isinstance(stmt, SelectStmt) or not stmt.has_sort:
            return plan
        all_cols: list[ColMeta] = [
            col for name in query.tables for col in self.catalog.get_table(name).cols
        ]
        sel_col = TabCol()
        for col in all_cols:
            if col.name == stmt.order_by.col_name:
                sel_col = TabCol(col.tab_name, col.name)
        return SortPlan(PlanTag.SORT, plan, sel_col, stmt.order_desc)

    def generate_select_plan(self, query: Query) -> Plan:
        """Plan a SELECT: joins, optional sort, then projection."""
        plan = self.make_one_rel(query)
        plan = self.generate_sort_plan(query, plan)
        return ProjectionPlan(PlanTag.PROJECTION, plan, list(query.cols))

    def do_planner(self, query: Query) -> Plan:
        """Build the plan for any DDL or DML statement."""
        stmt = query.parse
        if isinstance(stmt, CreateTable):
            col_defs = []
            for fld in stmt.fields:
                if not isinstance(fld, ColDef):
                    raise InternalError("Unexpected field type")
                col_defs.append(ColDef(fld.name, _interp_type(fld.type), fld.len))
            return DDLPlan(PlanTag.CREATE_TABLE, stmt.tab_name, [], col_defs)
        if isinstance(stmt, DropTable):
            return DDLPlan(PlanTag.DROP_TABLE, stmt.tab_name, [], [])
        if isinstance(stmt, CreateIndex):
            return DDLPlan(PlanTag.CREATE_INDEX, stmt.tab_name, list(stmt.col_names), [])
        if isinstance(stmt, DropIndex):
            return DDLPlan(PlanTag.DROP_INDEX, stmt.tab_name, list(stmt.col_names), [])
        if isinstance(stmt, InsertStmt):
            return DMLPlan(PlanTag.INSERT, None, stmt.tab_name, list(query.values), [], [])
        if isinstance(stmt, DeleteStmt):
            scan = self._scan_plan(stmt.tab_name, query.conds)
            return DMLPlan(PlanTag.DELETE, scan, stmt.tab_name, [], list(query.conds), [])
        if isinstance(stmt, UpdateStmt):
            scan = self._scan_plan(stmt.tab_name, query.conds)
            return DMLPlan(
                PlanTag.UPDATE, scan, stmt.tab_name, [], list(query.conds), list(query.set_clauses)
            )
        if isinstance(stmt, SelectStmt):
            projection = self.generate_select_plan(query)
            return DMLPlan(PlanTag.SELECT, projection, "", [], [], [])
        raise InternalError("Unexpected AST root")