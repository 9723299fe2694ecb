import pytest

from rmdb.analyze import (
    Analyzer,
    BinaryExpr,
    Catalog,
    ColRef,
    DeleteStmt,
    InsertStmt,
    SelectStmt,
    UpdateStmt,
    check_column,
    convert_comp_op,
)
from rmdb.plan import (
    AmbiguousColumnError,
    ColMeta,
    ColType,
    ColumnNotFoundError,
    CompOp,
    IncompatibleTypeError,
    InternalError,
    RMDBError,
    StringOverflowError,
    TabCol,
    TableNotFoundError,
    TabMeta,
    Value,
)


def _table(name, cols):
    metas = []
    offset = 0
    for col_name, col_type, length in cols:
        metas.append(ColMeta(name, col_name, col_type, length, offset))
        offset += length
    return TabMeta(name, metas)


@pytest.fixture
def catalog():
    return Catalog(
        [
            _table("a", [("id", ColType.INT, 4), ("name", ColType.STRING, 8)]),
            _table("b", [("id", ColType.INT, 4), ("score", ColType.FLOAT, 4)]),
        ]
    )


@pytest.fixture
def analyzer(catalog):
    return Analyzer(catalog)


def test_select_star_expands_all_columns(analyzer):
    stmt = SelectStmt(cols=[], tabs=["a", "b"])
    query = analyzer.analyze(stmt)
    assert query.cols == [
        TabCol("a", "id"),
        TabCol("a", "name"),
        TabCol("b", "id"),
        TabCol("b", "score"),
    ]
    assert query.tables == ["a", "b"]
    assert query.parse is stmt


def test_select_infers_table_name(analyzer):
    query = analyzer.analyze(SelectStmt(cols=[ColRef("score")], tabs=["a", "b"]))
    assert query.cols == [TabCol("b", "score")]


def test_select_ambiguous_column(analyzer):
    with pytest.raises(AmbiguousColumnError):
        analyzer.analyze(SelectStmt(cols=[ColRef("id")], tabs=["a", "b"]))


def test_select_unknown_column(analyzer):
    with pytest.raises(ColumnNotFoundError):
        analyzer.analyze(SelectStmt(cols=[ColRef("missing")], tabs=["a"]))


def test_select_qualified_unknown_column(analyzer):
    with pytest.raises(ColumnNotFoundError):
        analyzer.analyze(SelectStmt(cols=[ColRef("score", "a")], tabs=["a", "b"]))


def test_select_unknown_table(analyzer):
    with pytest.raises(TableNotFoundError):
        analyzer.analyze(SelectStmt(cols=[], tabs=["nope"]))


def test_where_condition_resolved(analyzer):
    stmt = SelectStmt(
        cols=[],
        tabs=["a", "b"],
        conds=[
            BinaryExpr(ColRef("name"), "=", "bob"),
            BinaryExpr(ColRef("id", "a"), "<", ColRef("id", "b")),
        ],
    )
    query = analyzer.analyze(stmt)
    first, second = query.conds
    assert first.lhs_col == TabCol("a", "name")
    assert first.op is CompOp.EQ
    assert first.rhs_val == Value(ColType.STRING, "bob")
    assert second.is_rhs_val is False
    assert second.rhs_col == TabCol("b", "id")
    assert second.op is CompOp.LT


def test_where_incompatible_types(analyzer):
    stmt = SelectStmt(cols=[], tabs=["a"], conds=[BinaryExpr(ColRef("id"), "=", "x")])
    with pytest.raises(IncompatibleTypeError) as info:
        analyzer.analyze(stmt)
    assert info.value.lhs == "INT"
    assert info.value.rhs == "STRING"


def test_where_column_vs_column_incompatible(analyzer):
    stmt = SelectStmt(
        cols=[], tabs=["a", "b"], conds=[BinaryExpr(ColRef("name"), "=", ColRef("score"))]
    )
    with pytest.raises(IncompatibleTypeError):
        analyzer.analyze(stmt)


def test_where_string_too_long(analyzer):
    stmt = SelectStmt(cols=[], tabs=["a"], conds=[BinaryExpr(ColRef("name"), "=", "far too long")])
    with pytest.raises(StringOverflowError):
        analyzer.analyze(stmt)


def test_delete_conditions(analyzer):
    query = analyzer.analyze(DeleteStmt("b", [BinaryExpr(ColRef("score"), ">=", 1.5)]))
    assert len(query.conds) == 1
    cond = query.conds[0]
    assert cond.lhs_col == TabCol("b", "score")
    assert cond.op is CompOp.GE
    assert cond.rhs_val == Value(ColType.FLOAT, 1.5)


def test_delete_column_from_other_table_rejected(analyzer):
    with pytest.raises(ColumnNotFoundError):
        analyzer.analyze(DeleteStmt("a", [BinaryExpr(ColRef("score"), "=", 1.0)]))


def test_insert_values(analyzer):
    query = analyzer.analyze(InsertStmt("a", [7, "x", 2.5]))
    assert query.values == [
        Value(ColType.INT, 7),
        Value(ColType.STRING, "x"),
        Value(ColType.FLOAT, 2.5),
    ]
    assert query.conds == []


def test_insert_bad_value_type(analyzer):
    with pytest.raises(InternalError):
        analyzer.analyze(InsertStmt("a", [None]))


def test_update_set_clauses_and_conds(analyzer):
    stmt = UpdateStmt("a", [("name", "amy")], [BinaryExpr(ColRef("id"), "<>", 3)])
    query = analyzer.analyze(stmt)
    assert query.set_clauses[0].lhs == TabCol("a", "name")
    assert query.set_clauses[0].rhs == Value(ColType.STRING, "amy")
    assert query.conds[0].op is CompOp.NE
    assert query.conds[0].lhs_col == TabCol("a", "id")


def test_update_incompatible_set(analyzer):
    with pytest.raises(IncompatibleTypeError):
        analyzer.analyze(UpdateStmt("a", [("id", "text")]))


def test_check_column_keeps_qualified_target(catalog):
    cols = catalog.get_table("a").cols
    target = TabCol("a", "id")
    assert check_column(cols, target) == target


def test_check_column_infers(catalog):
    cols = catalog.get_table("a").cols + catalog.get_table("b").cols
    assert check_column(cols, TabCol("", "name")) == TabCol("a", "name")


@pytest.mark.parametrize(
    "text,op",
    [
        ("=", CompOp.EQ),
        ("<>", CompOp.NE),
        ("<", CompOp.LT),
        (">", CompOp.GT),
        ("<=", CompOp.LE),
        (">=", CompOp.GE),
    ],
)
def test_convert_comp_op(text, op):
    assert convert_comp_op(text) is op
    assert convert_comp_op(op) is op


def test_convert_comp_op_unknown():
    with pytest.raises(InternalError):
        convert_comp_op("~")


def test_catalog_duplicate_and_lookup(catalog):
    assert catalog.get_table("b").name == "b"
    assert "a" in catalog
    with pytest.raises(RMDBError):
        catalog.add_table(TabMeta("a"))
    with pytest.raises(TableNotFoundError):
        catalog.get_table("zzz")