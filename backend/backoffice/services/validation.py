"""Explicit validation pass for invoice payloads.

Every check collects a FieldError instead of stopping at the first
problem, so the caller gets the full list in one response.  The functions
take plain mappings (e.g. `body.model_dump(exclude_unset=True)`) and do
not depend on FastAPI.

    errors = validate_invoice(payload)            # create
    errors = validate_invoice(payload, current=invoice)   # partial update
    ensure_valid(errors)                          # raises ValidationError
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal, InvalidOperation

from backoffice.middleware.exceptions import FieldError, ValidationError
from backoffice.services.amounts import ZERO

NOTES_MAX_LENGTH = 1000
DESCRIPTION_MAX_LENGTH = 500
TAX_RATE_MIN = Decimal("0")
TAX_RATE_MAX = Decimal("100")
MAX_DECIMAL_PLACES = 2

REQUIRED_INVOICE_FIELDS = ("company_id", "ship_id", "issue_date", "due_date", "tax_rate", "line_items")
REQUIRED_LINE_FIELDS = ("operation_id", "description", "quantity", "unit_price")


def _decimal(value) -> Decimal | None:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _decimal_places(number: Decimal) -> int:
    return max(-number.normalize().as_tuple().exponent, 0)


def _check_amount(errors: list[FieldError], field: str, value, *, strictly_positive: bool = False) -> None:
    """Amounts are stored with 2 decimals; more precision is rejected, never rounded."""
    number = _decimal(value)
    if number is None or not number.is_finite():
        errors.append(FieldError(field, "Must be a number", "type_error"))
    elif _decimal_places(number) > MAX_DECIMAL_PLACES:
        errors.append(FieldError(field, f"Must have at most {MAX_DECIMAL_PLACES} decimal places"))
    elif strictly_positive and number <= ZERO:
        errors.append(FieldError(field, "Must be greater than 0"))
    elif not strictly_positive and number < ZERO:
        errors.append(FieldError(field, "Must not be negative"))


def validate_line_item(item: Mapping, prefix: str = "line_items[0]") -> list[FieldError]:
    errors: list[FieldError] = []
    for name in REQUIRED_LINE_FIELDS:
        if item.get(name) is None:
            errors.append(FieldError(f"{prefix}.{name}", "Field required", "missing"))

    description = item.get("description")
    if description is not None:
        if not str(description).strip():
            errors.append(FieldError(f"{prefix}.description", "Must not be blank"))
        elif len(description) > DESCRIPTION_MAX_LENGTH:
            errors.append(FieldError(
                f"{prefix}.description",
                f"Must be at most {DESCRIPTION_MAX_LENGTH} characters",
            ))

    if item.get("quantity") is not None:
        _check_amount(errors, f"{prefix}.quantity", item["quantity"], strictly_positive=True)
    if item.get("unit_price") is not None:
        _check_amount(errors, f"{prefix}.unit_price", item["unit_price"])
    if item.get("unit_price_secondary") is not None:
        _check_amount(errors, f"{prefix}.unit_price_secondary", item["unit_price_secondary"])
    return errors


def validate_tax_rate(value) -> list[FieldError]:
    rate = _decimal(value)
    if rate is None or not rate.is_finite():
        return [FieldError("tax_rate", "Must be a number", "type_error")]
    if not TAX_RATE_MIN <= rate <= TAX_RATE_MAX:
        return [FieldError("tax_rate", "Must be between 0 and 100")]
    if _decimal_places(rate) > MAX_DECIMAL_PLACES:
        return [FieldError("tax_rate", f"Must have at most {MAX_DECIMAL_PLACES} decimal places")]
    return []


def validate_invoice(data: Mapping, current=None) -> list[FieldError]:
    """Validate a create payload, or a partial update when `current` is given.

    For a partial update, only keys present in `data` are checked, and
    cross-field rules (due date vs issue date) use the current invoice
    for whichever side is absent.
    """
    errors: list[FieldError] = []
    partial = current is not None

    for name in REQUIRED_INVOICE_FIELDS:
        if partial and name not in data:
            continue
        if data.get(name) is None:
            errors.append(FieldError(name, "Field required", "missing"))

    if data.get("tax_rate") is not None:
        errors.extend(validate_tax_rate(data["tax_rate"]))

    issue_date: date | None = data.get("issue_date") or (current.issue_date if partial else None)
    due_date: date | None = data.get("due_date") or (current.due_date if partial else None)
    if issue_date and due_date and due_date < issue_date:
        errors.append(FieldError("due_date", "Due date must not precede issue date"))

    notes = data.get("notes")
    if notes is not None and len(notes) > NOTES_MAX_LENGTH:
        errors.append(FieldError("notes", f"Must be at most {NOTES_MAX_LENGTH} characters"))

    line_items = data.get("line_items")
    if line_items is not None:
        if len(line_items) == 0:
            errors.append(FieldError("line_items", "At least one line item is required"))
        for index, item in enumerate(line_items):
            errors.extend(validate_line_item(item, prefix=f"line_items[{index}]"))

    return errors


def ensure_valid(errors: list[FieldError]) -> None:
    if errors:
        raise ValidationError(errors)
