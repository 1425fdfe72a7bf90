from __future__ import annotations

import uvicorn
from fastapi import FastAPI

from invoicing.api import create_app
from invoicing.auth import build_auth_provider
from invoicing.clock import SystemClock
from invoicing.config import Settings, load_dotenv
from invoicing.gateway import ExternalCall
from invoicing.logger import configure_logging
from invoicing.retry_utils import RetryPolicy
from invoicing.service import CustomerService, InvoiceService, ProductService
from invoicing.storage import SqliteStore


def build_app(settings: Settings | None = None) -> FastAPI:
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()
    configure_logging(settings.log_level)

    clock = SystemClock()
    store = SqliteStore(settings.db_path, clock=clock)
    auth = build_auth_provider(settings)
    external_call = ExternalCall(policy=RetryPolicy.from_settings(settings))
    return create_app(
        InvoiceService(store, auth, clock=clock, settings=settings, external_call=external_call),
        CustomerService(store, store, auth, external_call=external_call),
        ProductService(store, store, auth, external_call=external_call),
        clock=clock,
    )


app = build_app()


def main() -> None:
    settings = Settings.from_env()
    uvicorn.run("invoicing.api_main:app", host=settings.api_host, port=settings.api_port, reload=False)


if __name__ == "__main__":
    main()
