from __future__ import annotations

from datetime import date

import pytest

from invoicing.auth import StaticAuthProvider, User
from invoicing.clock import FixedClock
from invoicing.config import Settings
from invoicing.editor import UpdateDetails
from invoicing.errors import (
    AuthenticationRequiredError,
    ExternalServiceError,
    IllegalTransitionError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from invoicing.gateway import StoreError
from invoicing.service import CustomerService, InvoiceService, ProductService
from invoicing.storage import InMemoryStore, InvoiceFilter
from schemas.invoice_schema import Customer, Invoice, LineItem, Product

TODAY = date(2024, 6, 15)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture
def store(clock: FixedClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def service(store: InMemoryStore, clock: FixedClock) -> InvoiceService:
    return InvoiceService(store, StaticAuthProvider(User(id="user-1")), clock=clock)


def _draft(**overrides: object) -> Invoice:
    payload: dict[str, object] = {
        "company": "Acme Ltd",
        "company_address": "1 Main St",
        "client": "Globex",
        "client_address": "2 Side St",
        "invoice_number": "INV-2024-001",
        "due_date": "2024-07-01",
        "items": [
            LineItem(description="Design", quantity=2, price=50, tax_rate=10),
            LineItem(description="Hosting", quantity=1, price=20),
        ],
    }
    payload.update(overrides)
    return Invoice(**payload)


def test_new_invoice_uses_settings(store: InMemoryStore, clock: FixedClock) -> None:
    service = InvoiceService(
        store,
        StaticAuthProvider(User(id="u")),
        clock=clock,
        settings=Settings(default_currency="EUR", default_template_id="bold", default_due_in_days=14),
    )
    invoice = service.new_invoice()
    assert invoice.currency.code == "EUR"
    assert invoice.template_id == "bold"
    assert invoice.due_date == "2024-06-29"
    assert store.calls == []


def test_save_assigns_id_and_does_not_mutate_input(service: InvoiceService) -> None:
    draft = _draft(due_date="2024-07-01T09:30:00Z")
    snapshot = draft.model_dump_json()

    saved = service.save_invoice(draft)

    assert saved.id is not None
    assert saved.due_date == "2024-07-01"
    assert draft.model_dump_json() == snapshot
    assert service.totals(saved.id).grand_total == pytest.approx(130)


def test_save_without_items_is_blocked_before_storage(service: InvoiceService, store: InMemoryStore) -> None:
    with pytest.raises(ValidationError) as exc_info:
        service.save_invoice(_draft(items=[]))
    assert "items" in exc_info.value.field_errors
    assert "save_invoice" not in store.calls


def test_unparseable_due_date_falls_back_to_today(service: InvoiceService) -> None:
    saved = service.save_invoice(_draft(due_date="someday"))
    assert saved.due_date == "2024-06-15"


def test_paid_invoice_is_immutable(service: InvoiceService, store: InMemoryStore) -> None:
    saved = service.save_invoice(_draft())
    service.update_status(saved.id, "paid")
    stored_before = store.invoices[saved.id].model_dump_json()

    edited = store.load_invoice(saved.id).model_copy(update={"client": "Someone else"})
    with pytest.raises(IllegalTransitionError, match="cannot be edited"):
        service.save_invoice(edited)
    with pytest.raises(IllegalTransitionError):
        service.edit(store.load_invoice(saved.id), UpdateDetails("client", "Someone else"))

    assert store.invoices[saved.id].model_dump_json() == stored_before


def test_save_keeps_stored_status(service: InvoiceService) -> None:
    saved = service.save_invoice(_draft())
    service.update_status(saved.id, "sent")
    resaved = service.save_invoice(saved.model_copy(update={"client": "Initech", "status": "draft"}))
    assert resaved.status == "sent"
    assert resaved.client == "Initech"


def test_new_invoice_cannot_be_saved_as_overdue(service: InvoiceService, store: InMemoryStore) -> None:
    with pytest.raises(IllegalTransitionError):
        service.save_invoice(_draft(status="overdue"))
    assert store.invoices == {}


@pytest.mark.parametrize("current", ["draft", "sent", "paid", "cancelled", "overdue"])
def test_manual_overdue_rejected_before_any_store_call(
    service: InvoiceService, store: InMemoryStore, current: str
) -> None:
    saved = store.save_invoice(_draft(status=current, due_date="2024-06-01"))
    store.calls.clear()
    with pytest.raises(IllegalTransitionError):
        service.update_status(saved.id, "overdue")
    assert store.calls == []


def test_same_status_change_is_a_no_op(service: InvoiceService, store: InMemoryStore) -> None:
    saved = service.save_invoice(_draft())
    store.calls.clear()
    change = service.update_status(saved.id, "draft")
    assert change.changed is False
    assert "update_invoice_status" not in store.calls


def test_paid_date_is_stamped_and_cleared(service: InvoiceService, store: InMemoryStore, clock: FixedClock) -> None:
    saved = service.save_invoice(_draft())
    service.update_status(saved.id, "paid")
    assert store.invoices[saved.id].paid_date == "2024-06-15"

    clock.advance(days=1)
    change = service.update_status(saved.id, "sent")
    assert (change.previous, change.current) == ("paid", "sent")
    assert store.invoices[saved.id].paid_date is None


def test_status_change_touches_only_status(service: InvoiceService, store: InMemoryStore) -> None:
    saved = service.save_invoice(_draft())
    before = store.invoices[saved.id]
    service.update_status(saved.id, "sent")
    after = store.invoices[saved.id]
    assert after.status == "sent"
    assert after.model_dump(exclude={"status", "updated_at"}) == before.model_dump(exclude={"status", "updated_at"})


def test_load_derives_overdue_and_persists_it(service: InvoiceService, store: InMemoryStore, clock: FixedClock) -> None:
    saved = service.save_invoice(_draft(due_date="2024-06-20"))
    service.update_status(saved.id, "sent")
    assert service.load_invoice(saved.id).status == "sent"

    clock.advance(days=6)
    store.calls.clear()
    loaded = service.load_invoice(saved.id)
    assert loaded.status == "overdue"
    assert store.calls == ["load_invoice", "update_invoice_status", "load_invoice"]
    assert store.invoices[saved.id].status == "overdue"

    store.calls.clear()
    service.load_invoice(saved.id)
    assert store.calls == ["load_invoice"]


def test_refresh_overdue_updates_only_late_sent_invoices(
    service: InvoiceService, store: InMemoryStore
) -> None:
    late = store.save_invoice(_draft(status="sent", due_date="2024-06-01", invoice_number="A"))
    on_time = store.save_invoice(_draft(status="sent", due_date="2024-06-30", invoice_number="B"))
    draft = store.save_invoice(_draft(status="draft", due_date="2024-06-01", invoice_number="C"))
    undated = store.save_invoice(_draft(status="sent", due_date=None, invoice_number="D"))

    changes = service.refresh_overdue(page_size=1)

    assert len(changes) == 1
    assert (changes[0].previous, changes[0].current) == ("sent", "overdue")
    assert store.invoices[late.id].status == "overdue"
    assert store.invoices[on_time.id].status == "sent"
    assert store.invoices[draft.id].status == "draft"
    assert store.invoices[undated.id].status == "sent"


def test_list_invoices_refreshes_overdue(service: InvoiceService, store: InMemoryStore) -> None:
    store.save_invoice(_draft(status="sent", due_date="2024-06-01"))
    page = service.list_invoices(InvoiceFilter(status="sent"))
    assert [i.status for i in page.items] == ["overdue"]
    assert page.total_count == 1


def test_modifications_require_a_session(store: InMemoryStore, clock: FixedClock) -> None:
    service = InvoiceService(store, StaticAuthProvider(None), clock=clock)
    with pytest.raises(AuthenticationRequiredError):
        service.save_invoice(_draft())
    saved = store.save_invoice(_draft())
    with pytest.raises(ExternalServiceError):
        service.update_status(saved.id, "sent")
    with pytest.raises(ExternalServiceError):
        service.delete_invoice(saved.id)
    assert saved.id in store.invoices


def test_overdue_refresh_is_not_persisted_without_a_session(store: InMemoryStore, clock: FixedClock) -> None:
    late = store.save_invoice(_draft(status="sent", due_date="2024-06-01"))
    service = InvoiceService(store, StaticAuthProvider(None), clock=clock)

    with pytest.raises(AuthenticationRequiredError):
        service.refresh_overdue()

    store.calls.clear()
    assert service.load_invoice(late.id).status == "overdue"
    assert [i.status for i in service.list_invoices().items] == ["overdue"]
    assert "update_invoice_status" not in store.calls
    assert store.invoices[late.id].status == "sent"


def test_new_invoice_created_as_paid_gets_paid_date(service: InvoiceService, store: InMemoryStore) -> None:
    saved = service.save_invoice(_draft(status="paid"))
    assert store.invoices[saved.id].paid_date == "2024-06-15"

    sent = service.save_invoice(_draft(status="sent", paid_date="2024-01-01"))
    assert store.invoices[sent.id].paid_date is None


def test_store_failure_surfaces_as_external_service_error(
    service: InvoiceService, store: InMemoryStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _broken(_: Invoice) -> Invoice:
        raise StoreError("disk full")

    monkeypatch.setattr(store, "save_invoice", _broken)
    draft = _draft()
    with pytest.raises(ExternalServiceError) as exc_info:
        service.save_invoice(draft)
    assert exc_info.value.retryable
    assert draft.id is None


def test_delete_and_missing_invoice(service: InvoiceService) -> None:
    saved = service.save_invoice(_draft())
    service.delete_invoice(saved.id)
    with pytest.raises(NotFoundError):
        service.load_invoice(saved.id)
    with pytest.raises(NotFoundError):
        service.delete_invoice(saved.id)


def test_customer_with_invoices_cannot_be_deleted(store: InMemoryStore) -> None:
    auth = StaticAuthProvider(User(id="u"))
    customers = CustomerService(store, store, auth)
    customer = customers.save(Customer(name="Globex", email="billing@globex.com"))
    store.save_invoice(_draft(customer_id=customer.id))

    with pytest.raises(ReferentialIntegrityError) as exc_info:
        customers.delete(customer.id)
    assert exc_info.value.user_message == "Cannot delete this customer because it is used in invoices."
    assert "delete_customer" not in store.calls
    assert customers.get(customer.id).name == "Globex"


def test_unreferenced_customer_is_deleted(store: InMemoryStore) -> None:
    customers = CustomerService(store, store, StaticAuthProvider(User(id="u")))
    customer = customers.save(Customer(name="Initech"))
    customers.delete(customer.id)
    with pytest.raises(NotFoundError):
        customers.get(customer.id)


def test_customer_save_validates_formats(store: InMemoryStore) -> None:
    customers = CustomerService(store, store, StaticAuthProvider(User(id="u")))
    with pytest.raises(ValidationError):
        customers.save(Customer(name="Globex", email="not-an-email"))
    assert store.customers == {}
    assert [c.name for c in customers.search("").items] == []


def test_product_used_in_line_items_cannot_be_deleted(store: InMemoryStore) -> None:
    products = ProductService(store, store, StaticAuthProvider(User(id="u")))
    product = products.save(Product(name="Hosting", default_price=20))
    store.save_invoice(_draft(items=[LineItem(description="Hosting", price=20, product_id=product.id)]))

    with pytest.raises(ReferentialIntegrityError):
        products.delete(product.id)
    assert "delete_product" not in store.calls
    assert [p.name for p in products.search("host").items] == ["Hosting"]


def test_deleting_missing_product_raises_not_found(store: InMemoryStore) -> None:
    products = ProductService(store, store, StaticAuthProvider(User(id="u")))
    with pytest.raises(NotFoundError):
        products.delete("missing")
