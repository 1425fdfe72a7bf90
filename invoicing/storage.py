from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar
from uuid import uuid4

from invoicing.clock import Clock, SystemClock
from invoicing.errors import NotFoundError
from invoicing.gateway import StoreError, TransientStoreError
from invoicing.totals import compute_totals
from schemas.invoice_schema import Customer, Invoice, Product

T = TypeVar("T")

INVOICE_SORT_FIELDS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "due_date": "due_date",
    "invoice_number": "invoice_number",
    "client": "client",
    "status": "status",
    "total": "total",
}


@dataclass(frozen=True)
class InvoiceFilter:
    client: str | None = None
    customer_id: str | None = None
    status: str | None = None
    from_date: str | None = None
    to_date: str | None = None
    min_amount: float | None = None
    max_amount: float | None = None


@dataclass(frozen=True)
class SortSpec:
    field: str = "created_at"
    ascending: bool = False


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    page_size: int = 10

    @property
    def offset(self) -> int:
        return (max(self.page, 1) - 1) * self.page_size


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 10

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total_count // self.page_size)


class InvoiceStore(Protocol):
    def load_invoice(self, invoice_id: str) -> Invoice: ...

    def save_invoice(self, invoice: Invoice) -> Invoice: ...

    def update_invoice_status(
        self, invoice_id: str, status: str, paid_date: str | None
    ) -> Invoice: ...

    def delete_invoice(self, invoice_id: str) -> None: ...

    def list_invoices(
        self,
        invoice_filter: InvoiceFilter | None = None,
        sort: SortSpec | None = None,
        page: PageRequest | None = None,
    ) -> Page[Invoice]: ...

    def count_invoices_for_customer(self, customer_id: str) -> int: ...

    def count_line_items_for_product(self, product_id: str) -> int: ...


class CustomerStore(Protocol):
    def load_customer(self, customer_id: str) -> Customer: ...

    def save_customer(self, customer: Customer) -> Customer: ...

    def delete_customer(self, customer_id: str) -> None: ...

    def list_customers(
        self, name_query: str | None = None, page: PageRequest | None = None
    ) -> Page[Customer]: ...


class ProductStore(Protocol):
    def load_product(self, product_id: str) -> Product: ...

    def save_product(self, product: Product) -> Product: ...

    def delete_product(self, product_id: str) -> None: ...

    def list_products(
        self, name_query: str | None = None, page: PageRequest | None = None
    ) -> Page[Product]: ...


def _invoice_total(invoice: Invoice) -> float:
    return compute_totals(invoice).grand_total


def _matches(invoice: Invoice, invoice_filter: InvoiceFilter) -> bool:
    f = invoice_filter
    if f.client and f.client.lower() not in invoice.client.lower():
        return False
    if f.customer_id and invoice.customer_id != f.customer_id:
        return False
    if f.status and invoice.status != f.status:
        return False
    created = (invoice.created_at or "")[:10]
    if f.from_date and created < f.from_date:
        return False
    if f.to_date and created > f.to_date:
        return False
    total = _invoice_total(invoice)
    if f.min_amount is not None and total < f.min_amount:
        return False
    if f.max_amount is not None and total > f.max_amount:
        return False
    return True


def _sort_value(invoice: Invoice, sort_field: str) -> Any:
    if sort_field == "total":
        return _invoice_total(invoice)
    return getattr(invoice, sort_field) or ""


class InMemoryStore:
    """Dictionary-backed store implementing all three store protocols."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self.invoices: dict[str, Invoice] = {}
        self.customers: dict[str, Customer] = {}
        self.products: dict[str, Product] = {}
        self.calls: list[str] = []

    def _stamp(self, record: Any) -> Any:
        now = self._clock.now().isoformat()
        changes: dict[str, Any] = {"updated_at": now}
        if record.id is None:
            changes["id"] = uuid4().hex
            changes["created_at"] = now
        return record.model_copy(update=changes, deep=True)

    def load_invoice(self, invoice_id: str) -> Invoice:
        self.calls.append("load_invoice")
        if invoice_id not in self.invoices:
            raise NotFoundError("invoice", invoice_id)
        return self.invoices[invoice_id].model_copy(deep=True)

    def save_invoice(self, invoice: Invoice) -> Invoice:
        self.calls.append("save_invoice")
        saved = self._stamp(invoice)
        if saved.id in self.invoices and saved.created_at is None:
            saved = saved.model_copy(update={"created_at": self.invoices[saved.id].created_at})
        self.invoices[saved.id] = saved
        return saved.model_copy(deep=True)

    def update_invoice_status(self, invoice_id: str, status: str, paid_date: str | None) -> Invoice:
        self.calls.append("update_invoice_status")
        current = self.load_invoice(invoice_id)
        updated = current.model_copy(
            update={
                "status": status,
                "paid_date": paid_date,
                "updated_at": self._clock.now().isoformat(),
            }
        )
        self.invoices[invoice_id] = updated
        return updated.model_copy(deep=True)

    def delete_invoice(self, invoice_id: str) -> None:
        self.calls.append("delete_invoice")
        if self.invoices.pop(invoice_id, None) is None:
            raise NotFoundError("invoice", invoice_id)

    def list_invoices(
        self,
        invoice_filter: InvoiceFilter | None = None,
        sort: SortSpec | None = None,
        page: PageRequest | None = None,
    ) -> Page[Invoice]:
        self.calls.append("list_invoices")
        active_filter = invoice_filter or InvoiceFilter()
        active_sort = sort or SortSpec()
        active_page = page or PageRequest()
        if active_sort.field not in INVOICE_SORT_FIELDS:
            raise StoreError(f"Unsupported sort field: {active_sort.field}")

        matched = [inv for inv in self.invoices.values() if _matches(inv, active_filter)]
        matched.sort(
            key=lambda inv: _sort_value(inv, active_sort.field),
            reverse=not active_sort.ascending,
        )
        window = matched[active_page.offset : active_page.offset + active_page.page_size]
        return Page(
            items=[inv.model_copy(deep=True) for inv in window],
            total_count=len(matched),
            page=active_page.page,
            page_size=active_page.page_size,
        )

    def count_invoices_for_customer(self, customer_id: str) -> int:
        return sum(1 for inv in self.invoices.values() if inv.customer_id == customer_id)

    def count_line_items_for_product(self, product_id: str) -> int:
        return sum(
            1
            for inv in self.invoices.values()
            for item in inv.items
            if item.product_id == product_id
        )

    def load_customer(self, customer_id: str) -> Customer:
        if customer_id not in self.customers:
            raise NotFoundError("customer", customer_id)
        return self.customers[customer_id].model_copy()

    def save_customer(self, customer: Customer) -> Customer:
        saved = self._stamp(customer)
        self.customers[saved.id] = saved
        return saved.model_copy()

    def delete_customer(self, customer_id: str) -> None:
        self.calls.append("delete_customer")
        if self.customers.pop(customer_id, None) is None:
            raise NotFoundError("customer", customer_id)

    def list_customers(
        self, name_query: str | None = None, page: PageRequest | None = None
    ) -> Page[Customer]:
        return _page_by_name(list(self.customers.values()), name_query, page)

    def load_product(self, product_id: str) -> Product:
        if product_id not in self.products:
            raise NotFoundError("product", product_id)
        return self.products[product_id].model_copy()

    def save_product(self, product: Product) -> Product:
        saved = self._stamp(product)
        self.products[saved.id] = saved
        return saved.model_copy()

    def delete_product(self, product_id: str) -> None:
        self.calls.append("delete_product")
        if self.products.pop(product_id, None) is None:
            raise NotFoundError("product", product_id)

    def list_products(
        self, name_query: str | None = None, page: PageRequest | None = None
    ) -> Page[Product]:
        return _page_by_name(list(self.products.values()), name_query, page)


def _page_by_name(records: list[Any], name_query: str | None, page: PageRequest | None) -> Page[Any]:
    active_page = page or PageRequest()
    needle = (name_query or "").lower()
    matched = sorted(
        (r for r in records if needle in r.name.lower()),
        key=lambda r: r.name.lower(),
    )
    window = matched[active_page.offset : active_page.offset + active_page.page_size]
    return Page(
        items=[r.model_copy() for r in window],
        total_count=len(matched),
        page=active_page.page,
        page_size=active_page.page_size,
    )


class SqliteStore:
    """SQLite-backed store; records are kept as JSON documents.

    Invoice rows carry denormalized columns for filtering and sorting, and
    line item product references are mirrored into ``invoice_line_items`` so
    reference checks do not need to decode documents.
    """

    def __init__(self, db_path: str | Path = "data/invoicing.db", clock: Clock | None = None) -> None:
        self._db_path = str(db_path)
        self._clock = clock or SystemClock()
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def _execute(self, statements: list[tuple[str, tuple[Any, ...]]]) -> list[list[tuple[Any, ...]]]:
        results: list[list[tuple[Any, ...]]] = []
        try:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    for sql, params in statements:
                        results.append(conn.execute(sql, params).fetchall())
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except sqlite3.OperationalError as exc:
            if "locked" in str(exc) or "busy" in str(exc):
                raise TransientStoreError(str(exc)) from exc
            raise StoreError(str(exc)) from exc
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return results

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[tuple[Any, ...]]:
        return self._execute([(sql, params)])[0]

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS invoices (
                    id TEXT PRIMARY KEY,
                    invoice_number TEXT NOT NULL,
                    client TEXT NOT NULL,
                    customer_id TEXT,
                    status TEXT NOT NULL,
                    due_date TEXT,
                    total REAL NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS invoice_line_items (
                    invoice_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    item_id TEXT NOT NULL,
                    product_id TEXT,
                    PRIMARY KEY (invoice_id, position)
                )
                """
            )
            for table in ("customers", "products"):
                conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        document TEXT NOT NULL
                    )
                    """
                )

    def load_invoice(self, invoice_id: str) -> Invoice:
        rows = self._query("SELECT document FROM invoices WHERE id = ?", (invoice_id,))
        if not rows:
            raise NotFoundError("invoice", invoice_id)
        return Invoice.model_validate_json(rows[0][0])

    def save_invoice(self, invoice: Invoice) -> Invoice:
        now = self._clock.now().isoformat()
        if invoice.id is None:
            saved = invoice.model_copy(update={"id": uuid4().hex, "created_at": now, "updated_at": now})
        else:
            existing = self._query("SELECT created_at FROM invoices WHERE id = ?", (invoice.id,))
            created_at = existing[0][0] if existing else (invoice.created_at or now)
            saved = invoice.model_copy(update={"created_at": created_at, "updated_at": now})

        statements: list[tuple[str, tuple[Any, ...]]] = [
            (
                """
                INSERT OR REPLACE INTO invoices
                (id, invoice_number, client, customer_id, status, due_date, total,
                 created_at, updated_at, document)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    saved.id,
                    saved.invoice_number,
                    saved.client,
                    saved.customer_id,
                    saved.status,
                    saved.due_date,
                    _invoice_total(saved),
                    saved.created_at,
                    saved.updated_at,
                    saved.model_dump_json(),
                ),
            ),
            ("DELETE FROM invoice_line_items WHERE invoice_id = ?", (saved.id,)),
        ]
        for position, item in enumerate(saved.items):
            statements.append(
                (
                    "INSERT INTO invoice_line_items (invoice_id, position, item_id, product_id) VALUES (?, ?, ?, ?)",
                    (saved.id, position, item.id, item.product_id),
                )
            )
        self._execute(statements)
        return saved

    def update_invoice_status(self, invoice_id: str, status: str, paid_date: str | None) -> Invoice:
        current = self.load_invoice(invoice_id)
        updated = current.model_copy(
            update={"status": status, "paid_date": paid_date, "updated_at": self._clock.now().isoformat()}
        )
        self._execute(
            [
                (
                    "UPDATE invoices SET status = ?, updated_at = ?, document = ? WHERE id = ?",
                    (status, updated.updated_at, updated.model_dump_json(), invoice_id),
                )
            ]
        )
        return updated

    def delete_invoice(self, invoice_id: str) -> None:
        results = self._execute(
            [
                ("SELECT id FROM invoices WHERE id = ?", (invoice_id,)),
                ("DELETE FROM invoice_line_items WHERE invoice_id = ?", (invoice_id,)),
                ("DELETE FROM invoices WHERE id = ?", (invoice_id,)),
            ]
        )
        if not results[0]:
            raise NotFoundError("invoice", invoice_id)

    def list_invoices(
        self,
        invoice_filter: InvoiceFilter | None = None,
        sort: SortSpec | None = None,
        page: PageRequest | None = None,
    ) -> Page[Invoice]:
        f = invoice_filter or InvoiceFilter()
        active_sort = sort or SortSpec()
        active_page = page or PageRequest()
        column = INVOICE_SORT_FIELDS.get(active_sort.field)
        if column is None:
            raise StoreError(f"Unsupported sort field: {active_sort.field}")

        conditions: list[str] = []
        params: list[Any] = []
        if f.client:
            conditions.append("LOWER(client) LIKE ?")
            params.append(f"%{f.client.lower()}%")
        if f.customer_id:
            conditions.append("customer_id = ?")
            params.append(f.customer_id)
        if f.status:
            conditions.append("status = ?")
            params.append(f.status)
        if f.from_date:
            conditions.append("substr(created_at, 1, 10) >= ?")
            params.append(f.from_date)
        if f.to_date:
            conditions.append("substr(created_at, 1, 10) <= ?")
            params.append(f.to_date)
        if f.min_amount is not None:
            conditions.append("total >= ?")
            params.append(f.min_amount)
        if f.max_amount is not None:
            conditions.append("total <= ?")
            params.append(f.max_amount)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        direction = "ASC" if active_sort.ascending else "DESC"

        count_rows, rows = self._execute(
            [
                (f"SELECT COUNT(*) FROM invoices {where}", tuple(params)),
                (
                    f"SELECT document FROM invoices {where} ORDER BY {column} {direction}, id LIMIT ? OFFSET ?",
                    (*params, active_page.page_size, active_page.offset),
                ),
            ]
        )
        return Page(
            items=[Invoice.model_validate_json(row[0]) for row in rows],
            total_count=int(count_rows[0][0]),
            page=active_page.page,
            page_size=active_page.page_size,
        )

    def count_invoices_for_customer(self, customer_id: str) -> int:
        rows = self._query("SELECT COUNT(*) FROM invoices WHERE customer_id = ?", (customer_id,))
        return int(rows[0][0])

    def count_line_items_for_product(self, product_id: str) -> int:
        rows = self._query(
            "SELECT COUNT(*) FROM invoice_line_items WHERE product_id = ?", (product_id,)
        )
        return int(rows[0][0])

    def _save_named(self, table: str, record: Any) -> Any:
        now = self._clock.now().isoformat()
        changes: dict[str, Any] = {"updated_at": now}
        if record.id is None:
            changes["id"] = uuid4().hex
            changes["created_at"] = now
        saved = record.model_copy(update=changes)
        self._execute(
            [
                (
                    f"INSERT OR REPLACE INTO {table} (id, name, document) VALUES (?, ?, ?)",
                    (saved.id, saved.name, saved.model_dump_json()),
                )
            ]
        )
        return saved

    def _load_named(self, table: str, entity: str, record_id: str) -> str:
        rows = self._query(f"SELECT document FROM {table} WHERE id = ?", (record_id,))
        if not rows:
            raise NotFoundError(entity, record_id)
        return rows[0][0]

    def _delete_named(self, table: str, entity: str, record_id: str) -> None:
        results = self._execute(
            [
                (f"SELECT id FROM {table} WHERE id = ?", (record_id,)),
                (f"DELETE FROM {table} WHERE id = ?", (record_id,)),
            ]
        )
        if not results[0]:
            raise NotFoundError(entity, record_id)

    def _list_named(self, table: str, name_query: str | None, page: PageRequest | None) -> tuple[list[str], int, PageRequest]:
        active_page = page or PageRequest()
        pattern = f"%{(name_query or '').lower()}%"
        count_rows, rows = self._execute(
            [
                (f"SELECT COUNT(*) FROM {table} WHERE LOWER(name) LIKE ?", (pattern,)),
                (
                    f"SELECT document FROM {table} WHERE LOWER(name) LIKE ? ORDER BY LOWER(name) LIMIT ? OFFSET ?",
                    (pattern, active_page.page_size, active_page.offset),
                ),
            ]
        )
        return [row[0] for row in rows], int(count_rows[0][0]), active_page

    def load_customer(self, customer_id: str) -> Customer:
        return Customer.model_validate_json(self._load_named("customers", "customer", customer_id))

    def save_customer(self, customer: Customer) -> Customer:
        return self._save_named("customers", customer)

    def delete_customer(self, customer_id: str) -> None:
        self._delete_named("customers", "customer", customer_id)

    def list_customers(self, name_query: str | None = None, page: PageRequest | None = None) -> Page[Customer]:
        documents, total, active_page = self._list_named("customers", name_query, page)
        return Page(
            items=[Customer.model_validate_json(doc) for doc in documents],
            total_count=total,
            page=active_page.page,
            page_size=active_page.page_size,
        )

    def load_product(self, product_id: str) -> Product:
        return Product.model_validate_json(self._load_named("products", "product", product_id))

    def save_product(self, product: Product) -> Product:
        return self._save_named("products", product)

    def delete_product(self, product_id: str) -> None:
        self._delete_named("products", "product", product_id)

    def list_products(self, name_query: str | None = None, page: PageRequest | None = None) -> Page[Product]:
        documents, total, active_page = self._list_named("products", name_query, page)
        return Page(
            items=[Product.model_validate_json(doc) for doc in documents],
            total_count=total,
            page=active_page.page,
            page_size=active_page.page_size,
        )
