from __future__ import annotations


class InvoicingError(RuntimeError):
    code = "invoicing_error"
    user_message = "Something went wrong."
    retryable = False

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(InvoicingError):
    code = "validation_failed"

    def __init__(self, field_errors: dict[str, str], code: str | None = None) -> None:
        self.field_errors = dict(field_errors)
        fields = ", ".join(self.field_errors) or "unknown"
        super().__init__(f"Validation failed for: {fields}", code=code)

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return "; ".join(self.field_errors.values())


class NotFoundError(InvoicingError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: str | None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return f"The requested {self.entity} could not be found."


class ReferentialIntegrityError(InvoicingError):
    code = "referenced_record"

    def __init__(self, entity: str, entity_id: str, referenced_by: str, count: int) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.referenced_by = referenced_by
        self.count = count
        super().__init__(
            f"Cannot delete {entity} {entity_id}: referenced by {count} {referenced_by}"
        )

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return f"Cannot delete this {self.entity} because it is used in {self.referenced_by}."


class IllegalTransitionError(InvoicingError):
    code = "illegal_transition"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message, code=code)
        self.user_message = message


class ExternalServiceError(InvoicingError):
    code = "external_service_failed"
    user_message = "The service is temporarily unavailable. Please try again."
    retryable = True


class AuthenticationRequiredError(ExternalServiceError):
    code = "not_authenticated"
    user_message = "Your session has expired. Please sign in again."
