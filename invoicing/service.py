from __future__ import annotations

import logging
from typing import Callable, TypeVar

from invoicing.auth import AuthProvider, User, require_user
from invoicing.clock import Clock, SystemClock
from invoicing.config import Settings
from invoicing.dates import normalize_date
from invoicing.editor import InvoiceAction, apply_action, new_invoice
from invoicing.errors import ReferentialIntegrityError
from invoicing.gateway import ExternalCall
from invoicing.logger import log_invoice_event
from invoicing.reporting import DateRange, ReportRow, rows_from_invoices
from invoicing.retry_utils import RetryPolicy
from invoicing.state_machine import (
    DRAFT,
    PAID,
    SENT,
    StatusChange,
    derive_status,
    ensure_editable,
    ensure_manual_target,
    transition_status,
)
from invoicing.storage import (
    CustomerStore,
    InvoiceFilter,
    InvoiceStore,
    Page,
    PageRequest,
    ProductStore,
    SortSpec,
)
from invoicing.totals import InvoiceTotals, compute_totals
from invoicing.validation import validate_customer, validate_invoice_for_save, validate_product
from schemas.invoice_schema import Customer, Invoice, Product

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _default_call(settings: Settings) -> ExternalCall:
    return ExternalCall(policy=RetryPolicy.from_settings(settings))


class InvoiceService:
    def __init__(
        self,
        store: InvoiceStore,
        auth: AuthProvider,
        *,
        clock: Clock | None = None,
        settings: Settings | None = None,
        external_call: ExternalCall | None = None,
    ) -> None:
        self._store = store
        self._auth = auth
        self._clock = clock or SystemClock()
        self._settings = settings or Settings()
        self._call = external_call or _default_call(self._settings)

    def _user(self) -> User:
        return self._call(lambda: require_user(self._auth), name="auth.current_user")

    def _run(self, operation: Callable[[], T], name: str) -> T:
        return self._call(operation, name=name)

    def new_invoice(self) -> Invoice:
        return new_invoice(
            self._clock.today(),
            due_in_days=self._settings.default_due_in_days,
            currency_code=self._settings.default_currency,
            template_id=self._settings.default_template_id,
        )

    def edit(self, invoice: Invoice, action: InvoiceAction) -> Invoice:
        return apply_action(invoice, action, today=self._clock.today())

    def load_invoice(self, invoice_id: str) -> Invoice:
        invoice = self._run(lambda: self._store.load_invoice(invoice_id), "store.load_invoice")
        return self._refresh_overdue(invoice)

    def list_invoices(
        self,
        invoice_filter: InvoiceFilter | None = None,
        sort: SortSpec | None = None,
        page: PageRequest | None = None,
    ) -> Page[Invoice]:
        result = self._run(
            lambda: self._store.list_invoices(invoice_filter, sort, page), "store.list_invoices"
        )
        return Page(
            items=[self._refresh_overdue(invoice) for invoice in result.items],
            total_count=result.total_count,
            page=result.page,
            page_size=result.page_size,
        )

    def refresh_overdue(self, page_size: int = 100) -> list[StatusChange]:
        self._user()
        # Collect every sent invoice before writing so paging is not disturbed.
        candidates: list[Invoice] = []
        page_number = 1
        while True:
            request = PageRequest(page_number, page_size)
            result = self._run(
                lambda: self._store.list_invoices(
                    InvoiceFilter(status=SENT), SortSpec(field="created_at", ascending=True), request
                ),
                "store.list_invoices",
            )
            candidates.extend(result.items)
            if page_number >= result.total_pages:
                break
            page_number += 1

        changes: list[StatusChange] = []
        for invoice in candidates:
            refreshed = self._refresh_overdue(invoice)
            if refreshed.status != invoice.status:
                changes.append(StatusChange(previous=invoice.status, current=refreshed.status))
        return changes

    def _refresh_overdue(self, invoice: Invoice) -> Invoice:
        derived = derive_status(invoice.status, invoice.due_date, self._clock.today())
        if derived == invoice.status or invoice.id is None:
            return invoice
        session = self._call(lambda: self._auth.current_user(), name="auth.current_user")
        if session is None:
            # Reads still see the derived status; only signed-in callers persist it.
            return invoice.model_copy(update={"status": derived})
        invoice_id = invoice.id
        updated = self._run(
            lambda: self._store.update_invoice_status(invoice_id, derived, invoice.paid_date),
            "store.update_invoice_status",
        )
        log_invoice_event(
            logger,
            logging.INFO,
            "Invoice marked overdue",
            operation="refresh_overdue",
            invoice_id=invoice_id,
            invoice_number=invoice.invoice_number,
            status=derived,
            outcome="updated",
        )
        return updated

    def save_invoice(self, invoice: Invoice) -> Invoice:
        self._user()
        today = self._clock.today()

        if invoice.id is None:
            change = transition_status(DRAFT, invoice.status)
            paid_date = today.isoformat() if change.current == PAID else None
            prepared = invoice.model_copy(update={"paid_date": paid_date})
        else:
            invoice_id = invoice.id
            stored = self._run(lambda: self._store.load_invoice(invoice_id), "store.load_invoice")
            ensure_editable(stored.status)
            # Status only moves through update_status.
            prepared = invoice.model_copy(
                update={"status": stored.status, "paid_date": stored.paid_date}
            )

        validate_invoice_for_save(prepared)
        prepared = prepared.model_copy(
            update={"due_date": normalize_date(prepared.due_date, today=today)}
        )
        saved = self._run(lambda: self._store.save_invoice(prepared), "store.save_invoice")
        log_invoice_event(
            logger,
            logging.INFO,
            "Invoice saved",
            operation="save_invoice",
            invoice_id=saved.id,
            invoice_number=saved.invoice_number,
            status=saved.status,
            outcome="created" if invoice.id is None else "updated",
        )
        return saved

    def update_status(self, invoice_id: str, target: str) -> StatusChange:
        ensure_manual_target(target)
        self._user()
        current = self._run(lambda: self._store.load_invoice(invoice_id), "store.load_invoice")
        change = transition_status(current.status, target)
        if not change.changed:
            return change

        if change.current == PAID:
            paid_date: str | None = self._clock.today().isoformat()
        elif change.previous == PAID:
            paid_date = None
        else:
            paid_date = current.paid_date

        self._run(
            lambda: self._store.update_invoice_status(invoice_id, change.current, paid_date),
            "store.update_invoice_status",
        )
        log_invoice_event(
            logger,
            logging.INFO,
            f"Invoice status changed {change.previous} -> {change.current}",
            operation="update_status",
            invoice_id=invoice_id,
            invoice_number=current.invoice_number,
            status=change.current,
            outcome="updated",
        )
        return change

    def delete_invoice(self, invoice_id: str) -> None:
        self._user()
        self._run(lambda: self._store.delete_invoice(invoice_id), "store.delete_invoice")
        log_invoice_event(
            logger,
            logging.INFO,
            "Invoice deleted",
            operation="delete_invoice",
            invoice_id=invoice_id,
            outcome="deleted",
        )

    def report_rows(self, date_range: DateRange | None = None, page_size: int = 100) -> list[ReportRow]:
        invoice_filter = InvoiceFilter(
            from_date=date_range.start.isoformat() if date_range else None,
            to_date=date_range.end.isoformat() if date_range else None,
        )
        invoices: list[Invoice] = []
        page_number = 1
        while True:
            result = self.list_invoices(invoice_filter, SortSpec(), PageRequest(page_number, page_size))
            invoices.extend(result.items)
            if page_number >= result.total_pages:
                break
            page_number += 1
        return rows_from_invoices(invoices)

    def totals(self, invoice_id: str) -> InvoiceTotals:
        return compute_totals(self.load_invoice(invoice_id))


class CustomerService:
    def __init__(
        self,
        store: CustomerStore,
        invoices: InvoiceStore,
        auth: AuthProvider,
        *,
        external_call: ExternalCall | None = None,
    ) -> None:
        self._store = store
        self._invoices = invoices
        self._auth = auth
        self._call = external_call or ExternalCall()

    def get(self, customer_id: str) -> Customer:
        return self._call(lambda: self._store.load_customer(customer_id), name="store.load_customer")

    def search(self, name_query: str | None = None, page: PageRequest | None = None) -> Page[Customer]:
        return self._call(lambda: self._store.list_customers(name_query, page), name="store.list_customers")

    def save(self, customer: Customer) -> Customer:
        self._call(lambda: require_user(self._auth), name="auth.current_user")
        validate_customer(customer)
        saved = self._call(lambda: self._store.save_customer(customer), name="store.save_customer")
        log_invoice_event(
            logger, logging.INFO, "Customer saved", operation="save_customer", entity=saved.id
        )
        return saved

    def delete(self, customer_id: str) -> None:
        self._call(lambda: require_user(self._auth), name="auth.current_user")
        self.get(customer_id)
        references = self._call(
            lambda: self._invoices.count_invoices_for_customer(customer_id),
            name="store.count_invoices_for_customer",
        )
        if references:
            raise ReferentialIntegrityError("customer", customer_id, "invoices", references)
        self._call(lambda: self._store.delete_customer(customer_id), name="store.delete_customer")
        log_invoice_event(
            logger, logging.INFO, "Customer deleted", operation="delete_customer", entity=customer_id
        )


class ProductService:
    def __init__(
        self,
        store: ProductStore,
        invoices: InvoiceStore,
        auth: AuthProvider,
        *,
        external_call: ExternalCall | None = None,
    ) -> None:
        self._store = store
        self._invoices = invoices
        self._auth = auth
        self._call = external_call or ExternalCall()

    def get(self, product_id: str) -> Product:
        return self._call(lambda: self._store.load_product(product_id), name="store.load_product")

    def search(self, name_query: str | None = None, page: PageRequest | None = None) -> Page[Product]:
        return self._call(lambda: self._store.list_products(name_query, page), name="store.list_products")

    def save(self, product: Product) -> Product:
        self._call(lambda: require_user(self._auth), name="auth.current_user")
        validate_product(product)
        saved = self._call(lambda: self._store.save_product(product), name="store.save_product")
        log_invoice_event(
            logger, logging.INFO, "Product saved", operation="save_product", entity=saved.id
        )
        return saved

    def delete(self, product_id: str) -> None:
        self._call(lambda: require_user(self._auth), name="auth.current_user")
        self.get(product_id)
        references = self._call(
            lambda: self._invoices.count_line_items_for_product(product_id),
            name="store.count_line_items_for_product",
        )
        if references:
            raise ReferentialIntegrityError("product", product_id, "invoice line items", references)
        self._call(lambda: self._store.delete_product(product_id), name="store.delete_product")
        log_invoice_event(
            logger, logging.INFO, "Product deleted", operation="delete_product", entity=product_id
        )
