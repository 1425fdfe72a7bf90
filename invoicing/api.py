from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from invoicing.clock import Clock, SystemClock
from invoicing.currency import CURRENCIES
from invoicing.errors import (
    AuthenticationRequiredError,
    ExternalServiceError,
    IllegalTransitionError,
    InvoicingError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from invoicing.notifications import (
    notice_for_delete,
    notice_for_error,
    notice_for_save,
    notice_for_status_change,
)
from invoicing.reporting import (
    DateRange,
    customer_payment_history,
    dashboard_metrics,
    default_date_range,
    outstanding_invoices,
    sales_report,
)
from invoicing.service import CustomerService, InvoiceService, ProductService
from invoicing.storage import INVOICE_SORT_FIELDS, InvoiceFilter, Page, PageRequest, SortSpec
from invoicing.templates import INVOICE_TEMPLATES
from invoicing.totals import compute_totals, format_totals
from schemas.invoice_schema import Customer, Invoice, Product

_ERROR_STATUS: tuple[tuple[type[InvoicingError], int], ...] = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ReferentialIntegrityError, 409),
    (IllegalTransitionError, 409),
    (AuthenticationRequiredError, 401),
    (ExternalServiceError, 503),
)


class StatusUpdate(BaseModel):
    status: str


def _status_code_for(exc: InvoicingError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _page_payload(page: Page[Any]) -> dict[str, Any]:
    return {
        "items": page.items,
        "total_count": page.total_count,
        "page": page.page,
        "page_size": page.page_size,
        "total_pages": page.total_pages,
    }


def create_app(
    invoices: InvoiceService,
    customers: CustomerService,
    products: ProductService,
    *,
    clock: Clock | None = None,
) -> FastAPI:
    app = FastAPI(title="Invoicing API", version="0.1.0")
    active_clock = clock or SystemClock()

    @app.exception_handler(InvoicingError)
    def handle_invoicing_error(_: Request, exc: InvoicingError) -> JSONResponse:
        body: dict[str, Any] = {
            "error": exc.code,
            "message": exc.user_message,
            "notice": asdict(notice_for_error(exc)),
        }
        if isinstance(exc, ValidationError):
            body["fields"] = exc.field_errors
        return JSONResponse(status_code=_status_code_for(exc), content=body)

    def _range(start: date | None, end: date | None) -> DateRange:
        fallback = default_date_range(active_clock.today())
        if start is None and end is None:
            return fallback
        return DateRange(start=start or fallback.start, end=end or fallback.end)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/currencies")
    def currencies() -> list[dict[str, Any]]:
        return [currency.model_dump() for currency in CURRENCIES]

    @app.get("/templates")
    def templates() -> list[dict[str, Any]]:
        return [asdict(template) for template in INVOICE_TEMPLATES]

    @app.get("/invoices")
    def list_invoices(
        client: str | None = None,
        customer_id: str | None = None,
        status: str | None = None,
        min_amount: float | None = None,
        max_amount: float | None = None,
        sort_by: str = "created_at",
        ascending: bool = False,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        if sort_by not in INVOICE_SORT_FIELDS:
            raise ValidationError({"sort_by": f"Unsupported sort field: {sort_by}"})
        result = invoices.list_invoices(
            InvoiceFilter(
                client=client,
                customer_id=customer_id,
                status=status,
                min_amount=min_amount,
                max_amount=max_amount,
            ),
            SortSpec(field=sort_by, ascending=ascending),
            PageRequest(page=page, page_size=page_size),
        )
        return _page_payload(result)

    @app.get("/invoices/new")
    def new_invoice() -> Invoice:
        return invoices.new_invoice()

    @app.get("/invoices/{invoice_id}")
    def get_invoice(invoice_id: str) -> Invoice:
        return invoices.load_invoice(invoice_id)

    @app.post("/invoices", status_code=201)
    def create_invoice(invoice: Invoice) -> dict[str, Any]:
        saved = invoices.save_invoice(invoice.model_copy(update={"id": None}))
        return {"invoice": saved, "notice": asdict(notice_for_save(saved.invoice_number, created=True))}

    @app.put("/invoices/{invoice_id}")
    def update_invoice(invoice_id: str, invoice: Invoice) -> dict[str, Any]:
        saved = invoices.save_invoice(invoice.model_copy(update={"id": invoice_id}))
        return {"invoice": saved, "notice": asdict(notice_for_save(saved.invoice_number, created=False))}

    @app.post("/invoices/{invoice_id}/status")
    def update_status(invoice_id: str, body: StatusUpdate) -> dict[str, Any]:
        change = invoices.update_status(invoice_id, body.status)
        invoice = invoices.load_invoice(invoice_id)
        return {
            "previous": change.previous,
            "current": change.current,
            "changed": change.changed,
            "notice": asdict(notice_for_status_change(invoice.invoice_number, change)),
        }

    @app.get("/invoices/{invoice_id}/totals")
    def invoice_totals(invoice_id: str) -> dict[str, Any]:
        invoice = invoices.load_invoice(invoice_id)
        totals = compute_totals(invoice)
        return {"totals": totals.as_dict(), "formatted": format_totals(invoice, totals)}

    @app.delete("/invoices/{invoice_id}")
    def delete_invoice(invoice_id: str) -> dict[str, Any]:
        invoices.delete_invoice(invoice_id)
        return {"notice": asdict(notice_for_delete("invoice"))}

    @app.get("/customers")
    def list_customers(q: str | None = None, page: int = 1, page_size: int = 10) -> dict[str, Any]:
        return _page_payload(customers.search(q, PageRequest(page=page, page_size=page_size)))

    @app.get("/customers/{customer_id}")
    def get_customer(customer_id: str) -> Customer:
        return customers.get(customer_id)

    @app.post("/customers", status_code=201)
    def create_customer(customer: Customer) -> Customer:
        return customers.save(customer.model_copy(update={"id": None}))

    @app.put("/customers/{customer_id}")
    def update_customer(customer_id: str, customer: Customer) -> Customer:
        customers.get(customer_id)
        return customers.save(customer.model_copy(update={"id": customer_id}))

    @app.delete("/customers/{customer_id}")
    def delete_customer(customer_id: str) -> dict[str, Any]:
        customers.delete(customer_id)
        return {"notice": asdict(notice_for_delete("customer"))}

    @app.get("/products")
    def list_products(q: str | None = None, page: int = 1, page_size: int = 10) -> dict[str, Any]:
        return _page_payload(products.search(q, PageRequest(page=page, page_size=page_size)))

    @app.get("/products/{product_id}")
    def get_product(product_id: str) -> Product:
        return products.get(product_id)

    @app.post("/products", status_code=201)
    def create_product(product: Product) -> Product:
        return products.save(product.model_copy(update={"id": None}))

    @app.put("/products/{product_id}")
    def update_product(product_id: str, product: Product) -> Product:
        products.get(product_id)
        return products.save(product.model_copy(update={"id": product_id}))

    @app.delete("/products/{product_id}")
    def delete_product(product_id: str) -> dict[str, Any]:
        products.delete(product_id)
        return {"notice": asdict(notice_for_delete("product"))}

    @app.get("/reports/dashboard")
    def dashboard(start: date | None = None, end: date | None = None) -> dict[str, Any]:
        date_range = _range(start, end)
        rows = invoices.report_rows(date_range)
        return dashboard_metrics(rows, active_clock.today(), date_range).as_dict()

    @app.get("/reports/outstanding")
    def outstanding(
        start: date | None = None,
        end: date | None = None,
        sort_by: str = "days_overdue",
        ascending: bool = False,
    ) -> list[dict[str, Any]]:
        # Outstanding invoices default to every open invoice, not a trailing window.
        rows = invoices.report_rows(_range(start, end) if start or end else None)
        items = outstanding_invoices(rows, active_clock.today(), sort_by=sort_by, ascending=ascending)
        return [asdict(item) for item in items]

    @app.get("/reports/customers")
    def customer_history(
        start: date | None = None,
        end: date | None = None,
        sort_by: str = "total_billed",
        ascending: bool = False,
    ) -> list[dict[str, Any]]:
        rows = invoices.report_rows(_range(start, end))
        items = customer_payment_history(rows, sort_by=sort_by, ascending=ascending)
        return [asdict(item) for item in items]

    @app.get("/reports/sales")
    def sales(
        start: date | None = None,
        end: date | None = None,
        status: str | None = None,
        sort_by: str = "created_at",
        ascending: bool = False,
    ) -> list[dict[str, Any]]:
        rows = invoices.report_rows(_range(start, end))
        statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
        items = sales_report(rows, statuses=statuses, sort_by=sort_by, ascending=ascending)
        return [asdict(item) for item in items]

    return app
