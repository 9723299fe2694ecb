# rmdb

Building blocks of a small relational database engine: catalog metadata, semantic analysis
of parsed statements, query planning, the on-disk layout of B+ tree index files, and an
interactive client for a database server.

## Modules

- `rmdb.plan`: the error types (`RMDBError` and its subclasses such as
  `ColumnNotFoundError`, `AmbiguousColumnError`, `IncompatibleTypeError`,
  `TableNotFoundError`), catalog metadata (`ColType`, `ColMeta`, `TabMeta`, `IndexMeta`),
  values and conditions (`Value`, `Condition`, `SetClause`, `TabCol`, `CompOp`), and the
  plan tree (`ScanPlan`, `JoinPlan`, `ProjectionPlan`, `SortPlan`, `DMLPlan`, `DDLPlan`,
  `OtherPlan`, `SetKnobPlan`), each tagged with a `PlanTag`. `swap_op` gives the operator
  that holds once the operands are exchanged. `Value.raw(length)` encodes a value as a
  fixed-width little-endian field.
- `rmdb.index`: the layout of B+ tree index files. It covers the file header (`IxFileHdr`,
  with `for_columns`, `serialize` and `deserialize`), the node page header (`IxPageHdr`, with
  `pack` and `unpack`) and key slot positions (`Iid`). It also provides multi-column key
  comparison (`compare_field`, `ix_compare`), index file naming (`index_name`), node
  capacity (`btree_order`) and key extraction from a record (`build_key`).
- `rmdb.analyze`: statement objects (`SelectStmt`, `InsertStmt`, `UpdateStmt`,
  `DeleteStmt`, `BinaryExpr`, `ColRef`), a `Catalog` of tables and an `Analyzer` that turns
  a statement into a `Query`. The analyzer infers the table of unqualified columns,
  reporting ambiguous or missing ones, and type-checks `WHERE` conditions and `SET` values.
- `rmdb.planner`: DDL statement objects (`CreateTable`, `DropTable`, `CreateIndex`,
  `DropIndex`) and a `Planner` that builds plan trees. The planner chooses a sequential
  scan, or an index scan when the equality conditions exactly match an index. It orders
  nested-loop joins from the join conditions and adds sort and projection nodes for
  `SELECT`. `set_enable_nestedloop_join` and `set_enable_sortmerge_join` pick the join kind
  used for the first join.
- `rmdb.client`: an interactive client. It sends each command, NUL-terminated, to a server
  over TCP or a Unix socket and prints the reply.

## Installation

```
pip install .
```

## Using the client

```
rmdb-client                     # connect to 127.0.0.1:8765
rmdb-client -h db.example.com -p 9000
rmdb-client -s /tmp/rmdb.sock   # connect through a Unix socket
```

At the `Rucbase> ` prompt, type commands. Empty lines are ignored. `exit`, `exit;`,
`bye` or `bye;` ends the session. The client exits with status 1 when it cannot connect.

## Planning a query

```python
from rmdb.plan import ColMeta, ColType, TabMeta
from rmdb.analyze import Analyzer, Catalog, ColRef, SelectStmt
from rmdb.planner import Planner

catalog = Catalog()
catalog.add_table(TabMeta("t", [ColMeta("t", "id", ColType.INT, 4, 0)]))

query = Analyzer(catalog).analyze(SelectStmt(cols=[ColRef("id")], tabs=["t"]))
plan = Planner(catalog).do_planner(query)
# plan is a DMLPlan tagged PlanTag.SELECT over a ProjectionPlan over a ScanPlan
```

## What this package does not do

This package has no SQL parser: statements are built as Python objects. It has no executor
that runs plans, no record or page storage and no buffer pool. `rmdb.index` describes how
index files are laid out but does not read, write or search a B+ tree. There is no
transaction handling and no database server. `rmdb-client` only talks to a server that
runs elsewhere.

## Tests

```
pip install .[test]
pytest
```