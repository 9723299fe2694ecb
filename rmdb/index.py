"""On-disk layout of B+ tree index files: headers, key comparison and naming."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Iterable, Sequence, Union

from rmdb.plan import ColMeta, ColType, InternalError, RMDBError

PAGE_SIZE = 4096

IX_NO_PAGE = -1
IX_FILE_HDR_PAGE = 0
IX_LEAF_HEADER_PAGE = 1
IX_INIT_ROOT_PAGE = 2
IX_INIT_NUM_PAGES = 3
IX_MAX_COL_LEN = 512

_PAGE_HDR = struct.Struct("<iii?3xii")
PAGE_HDR_SIZE = _PAGE_HDR.size
RID_SIZE = struct.calcsize("<ii")

_INT = struct.Struct("<i")
_FLOAT = struct.Struct("<f")

_TYPE_CODES = {ColType.INT: 0, ColType.FLOAT: 1, ColType.STRING: 2}
_CODE_TYPES = {code: col_type for col_type, code in _TYPE_CODES.items()}


class IndexError_(RMDBError):
    """Base class for errors raised by the index layer."""


class InvalidColLengthError(IndexError_):
    def __init__(self, col_len: int) -> None:
        super().__init__(f"Invalid column length: {col_len}")
        self.col_len = col_len


@dataclass(frozen=True)
class Iid:
    """Position of a key slot inside the index: leaf page and slot number."""

    page_no: int
    slot_no: int


@dataclass
class IxPageHdr:
    """Header stored at the start of every B+ tree node page."""

    next_free_page_no: int = IX_NO_PAGE
    parent: int = IX_NO_PAGE
    num_key: int = 0
    is_leaf: bool = False
    prev_leaf: int = IX_NO_PAGE
    next_leaf: int = IX_NO_PAGE

    def pack(self) -> bytes:
        """Encode the header as it is laid out on the page."""
        return _PAGE_HDR.pack(
            self.next_free_page_no,
            self.parent,
            self.num_key,
            self.is_leaf,
            self.prev_leaf,
            self.next_leaf,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "IxPageHdr":
        """Decode a header from the start of a page."""
        if len(data) < PAGE_HDR_SIZE:
            raise IndexError_("Page header is truncated")
        next_free, parent, num_key, is_leaf, prev_leaf, next_leaf = _PAGE_HDR.unpack_from(data)
        return cls(next_free, parent, num_key, bool(is_leaf), prev_leaf, next_leaf)


@dataclass
class IxFileHdr:
    """Header stored on the first page of an index file."""

    first_free_page_no: int = IX_NO_PAGE
    num_pages: int = 0
    root_page: int = IX_NO_PAGE
    col_types: list[ColType] = field(default_factory=list)
    col_lens: list[int] = field(default_factory=list)
    col_tot_len: int = 0
    btree_order: int = 0
    keys_size: int = 0
    first_leaf: int = IX_NO_PAGE
    last_leaf: int = IX_NO_PAGE
    tot_len: int = 0

    @property
    def col_num(self) -> int:
        return len(self.col_types)

    @classmethod
    def for_columns(cls, col_types: Sequence[ColType], col_lens: Sequence[int]) -> "IxFileHdr":
        """Header of a freshly created index over columns of these types and lengths."""
        if len(col_types) != len(col_lens):
            raise IndexError_("Column types and lengths differ in number")
        col_tot_len = sum(col_lens)
        order = btree_order(col_tot_len)
        hdr = cls(
            first_free_page_no=IX_NO_PAGE,
            num_pages=IX_INIT_NUM_PAGES,
            root_page=IX_INIT_ROOT_PAGE,
            col_types=list(col_types),
            col_lens=list(col_lens),
            col_tot_len=col_tot_len,
            btree_order=order,
            keys_size=(order + 1) * col_tot_len,
            first_leaf=IX_INIT_ROOT_PAGE,
            last_leaf=IX_INIT_ROOT_PAGE,
        )
        hdr.update_tot_len()
        return hdr

    def update_tot_len(self) -> int:
        """Recompute and return the serialized length of the header."""
        self.tot_len = 4 * 4 + 4 * 6 + 4 * self.col_num + 4 * self.col_num
        return self.tot_len

    def _format(self) -> struct.Struct:
        n = self.col_num
        return struct.Struct(f"<5i{n}i{n}i5i")

    def serialize(self) -> bytes:
        """Encode the header; its length equals ``tot_len``."""
        if len(self.col_lens) != self.col_num:
            raise IndexError_("Column types and lengths differ in number")
        data = self._format().pack(
            self.tot_len,
            self.first_free_page_no,
            self.num_pages,
            self.root_page,
            self.col_num,
            *(_TYPE_CODES[t] for t in self.col_types),
            *self.col_lens,
            self.col_tot_len,
            self.btree_order,
            self.keys_size,
            self.first_leaf,
            self.last_leaf,
        )
        if len(data) != self.tot_len:
            raise IndexError_("Header length does not match tot_len")
        return data

    @classmethod
    def deserialize(cls, data: bytes) -> "IxFileHdr":
        """Decode a header written by :meth:`serialize`."""
        prefix = struct.Struct("<5i")
        if len(data) < prefix.size:
            raise IndexError_("Index file header is truncated")
        tot_len, first_free, num_pages, root_page, col_num = prefix.unpack_from(data)
        if col_num < 0:
            raise IndexError_("Negative column count in index header")
        body = struct.Struct(f"<{col_num}i{col_num}i5i")
        if len(data) < prefix.size + body.size:
            raise IndexError_("Index file header is truncated")
        values = body.unpack_from(data, prefix.size)
        codes = values[:col_num]
        lens = list(values[col_num : 2 * col_num])
        col_tot_len, order, keys_size, first_leaf, last_leaf = values[2 * col_num :]
        try:
            types = [_CODE_TYPES[code] for code in codes]
        except KeyError as exc:
            raise IndexError_(f"Unknown column type code {exc.args[0]}") from None
        if prefix.size + body.size != tot_len:
            raise IndexError_("Header length does not match tot_len")
        return cls(
            first_free_page_no=first_free,
            num_pages=num_pages,
            root_page=root_page,
            col_types=types,
            col_lens=lens,
            col_tot_len=col_tot_len,
            btree_order=order,
            keys_size=keys_size,
            first_leaf=first_leaf,
            last_leaf=last_leaf,
            tot_len=tot_len,
        )


def _sign(x: int) -> int:
    return (x > 0) - (x < 0)


def compare_field(a: bytes, b: bytes, col_type: ColType, col_len: int) -> int:
    """Compare one encoded field of each key; returns -1, 0 or 1."""
    if col_type is ColType.INT:
        (ia,) = _INT.unpack_from(a)
        (ib,) = _INT.unpack_from(b)
        return _sign(ia - ib)
    if col_type is ColType.FLOAT:
        (fa,) = _FLOAT.unpack_from(a)
        (fb,) = _FLOAT.unpack_from(b)
        return -1 if fa < fb else (1 if fa > fb else 0)
    if col_type is ColType.STRING:
        sa, sb = bytes(a[:col_len]), bytes(b[:col_len])
        return -1 if sa < sb else (1 if sa > sb else 0)
    raise InternalError("Unexpected data type")


def ix_compare(a: bytes, b: bytes, col_types: Sequence[ColType], col_lens: Sequence[int]) -> int:
    """Compare two composite keys field by field."""
    offset = 0
    for col_type, col_len in zip(col_types, col_lens):
        res = compare_field(a[offset:], b[offset:], col_type, col_len)
        if res != 0:
            return res
        offset += col_len
    return 0


def index_name(table: str, columns: Iterable[Union[str, ColMeta]]) -> str:
    """File name of the index on ``table`` over ``columns``."""
    names = [col.name if isinstance(col, ColMeta) else col for col in columns]
    return table + "".join(f"_{name}" for name in names) + ".idx"


def btree_order(col_tot_len: int) -> int:
    """Largest number of key/rid pairs a node holds, one slot being kept spare."""
    if col_tot_len > IX_MAX_COL_LEN or col_tot_len <= 0:
        raise InvalidColLengthError(col_tot_len)
    order = (PAGE_SIZE - PAGE_HDR_SIZE) // (col_tot_len + RID_SIZE) - 1
    if order <= 2:
        raise InvalidColLengthError(col_tot_len)
    return order


def build_key(record: bytes, cols: Iterable[ColMeta]) -> bytes:
    """Concatenate the fields of ``record`` that make up an index key."""
    return b"".join(bytes(record[col.offset : col.offset + col.len]) for col in cols)