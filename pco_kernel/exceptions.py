"""
Typed Exception Hierarchy for Private Client Orders.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the order state machine and the bulk pricing session (RPC
handlers, admin tooling, tests) must react to failures by kind, not by
parsing message strings:

    try:
        service.approve_order(actor, order_id)
    except InvalidTransitionError as e:
        respond(400, code=e.code, current=e.current_status)
    except OrderNotFoundError as e:
        respond(404, code=e.code, order_id=e.order_id)

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PrivateClientOrderError (base)
    |
    +-- NotFoundError                      (not-found)
    |   +-- OrderNotFoundError
    |   +-- LineItemNotFoundError
    |   +-- PartnerNotFoundError
    |   +-- PricingSessionNotFoundError
    |   +-- PricingItemNotFoundError
    |
    +-- InvalidStateError                  (invalid-state / bad request)
    |   +-- InvalidTransitionError
    |   +-- OrderNotEditableError
    |   +-- PaymentAlreadyConfirmedError
    |
    +-- ForbiddenError                     (forbidden)
    |   +-- ActorRoleError
    |   +-- NotOrderOwnerError
    |   +-- NotAssignedDistributorError
    |
    +-- ValidationError                    (validation)
    |   +-- InvalidInputError
    |   +-- MissingCalculationVariablesError
    |   +-- MissingColumnMappingError
    |   +-- NoRawDataError
    |   +-- NoValidPricedRowsError
    |
    +-- PreconditionFailedError            (precondition-failed)
    |   +-- StockNotReadyError
    |   +-- DistributorNotAssignedError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|---------------------------------------
Not found     | ORDER_NOT_FOUND               | Order ID does not resolve
              | LINE_ITEM_NOT_FOUND           | Line item ID does not resolve
              | PARTNER_NOT_FOUND             | Partner/distributor ID does not resolve
              | PRICING_SESSION_NOT_FOUND     | Bulk pricing session does not resolve
              | PRICING_ITEM_NOT_FOUND        | Bulk pricing row does not resolve
--------------|-------------------------------|---------------------------------------
Invalid state | INVALID_TRANSITION            | Status not in the action's allowed set
              | ORDER_NOT_EDITABLE            | Item edit outside draft/revision
              | PAYMENT_ALREADY_CONFIRMED     | Payment stage confirmed twice
--------------|-------------------------------|---------------------------------------
Forbidden     | ACTOR_ROLE_NOT_ALLOWED        | Role may not perform the action
              | NOT_ORDER_OWNER               | Partner acting on another's order
              | NOT_ASSIGNED_DISTRIBUTOR      | Distributor acting on foreign order
--------------|-------------------------------|---------------------------------------
Validation    | INVALID_INPUT                 | Malformed or missing input field
              | MISSING_CALCULATION_VARIABLES | Calculation run before variables set
              | MISSING_COLUMN_MAPPING        | Calculation run before mapping set
              | NO_RAW_DATA                   | Session holds no uploaded rows
              | NO_VALID_PRICED_ROWS          | Every uploaded row was unpriceable
--------------|-------------------------------|---------------------------------------
Precondition  | STOCK_NOT_READY               | Item stock status not eligible
              | DISTRIBUTOR_NOT_ASSIGNED      | Action needs an assigned distributor
--------------|-------------------------------|---------------------------------------
Concurrency   | OPTIMISTIC_LOCK_CONFLICT      | Conditional write lost a race

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Categories mirror the five error kinds exposed at the RPC boundary, so
   a transport layer can map ``NotFoundError`` -> 404, ``InvalidStateError``
   and ``ValidationError`` -> 400, ``ForbiddenError`` -> 403,
   ``PreconditionFailedError`` -> 412 and ``ConcurrencyError`` -> 409
   without knowing the leaf classes.

2. Identifiers are stored as strings so exceptions serialize cleanly into
   structured log records (see ``StructuredFormatter``).
"""

from __future__ import annotations

from collections.abc import Iterable


class PrivateClientOrderError(Exception):
    """
    Base exception for all Private Client Orders errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "PRIVATE_CLIENT_ORDER_ERROR"


# Not-found exceptions


class NotFoundError(PrivateClientOrderError):
    """Base exception for identifiers that do not resolve."""

    code: str = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = str(order_id)
        super().__init__(f"Order not found: {order_id}")


class LineItemNotFoundError(NotFoundError):
    """Order line item with given ID was not found."""

    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, item_id: str, order_id: str | None = None):
        self.item_id = str(item_id)
        self.order_id = str(order_id) if order_id is not None else None
        if order_id is not None:
            super().__init__(f"Line item {item_id} not found on order {order_id}")
        else:
            super().__init__(f"Line item not found: {item_id}")


class PartnerNotFoundError(NotFoundError):
    """Partner or distributor with given ID was not found."""

    code: str = "PARTNER_NOT_FOUND"

    def __init__(self, partner_id: str):
        self.partner_id = str(partner_id)
        super().__init__(f"Partner not found: {partner_id}")


class PricingSessionNotFoundError(NotFoundError):
    """Bulk pricing session with given ID was not found."""

    code: str = "PRICING_SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = str(session_id)
        super().__init__(f"Pricing session not found: {session_id}")


class PricingItemNotFoundError(NotFoundError):
    """Bulk pricing line item with given ID was not found."""

    code: str = "PRICING_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = str(item_id)
        super().__init__(f"Pricing item not found: {item_id}")


# Invalid-state exceptions


class InvalidStateError(PrivateClientOrderError):
    """Base exception for actions not permitted in the current status."""

    code: str = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    """Requested action is not allowed from the order's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        order_id: str,
        action: str,
        current_status: str,
        required_statuses: Iterable[str],
    ):
        self.order_id = str(order_id)
        self.action = action
        self.current_status = current_status
        self.required_statuses = tuple(required_statuses)
        required = ", ".join(self.required_statuses) or "(none)"
        super().__init__(
            f"Cannot {action} order {order_id} with status '{current_status}'. "
            f"Order must be in one of: {required}"
        )


class OrderNotEditableError(InvalidStateError):
    """Line items can only change while the order is draft or revision_requested."""

    code: str = "ORDER_NOT_EDITABLE"

    def __init__(self, order_id: str, current_status: str, editable_statuses: Iterable[str]):
        self.order_id = str(order_id)
        self.current_status = current_status
        self.editable_statuses = tuple(editable_statuses)
        super().__init__(
            f"Cannot edit items of order {order_id} with status '{current_status}'. "
            f"Items are editable only in: {', '.join(self.editable_statuses)}"
        )


class PaymentAlreadyConfirmedError(InvalidStateError):
    """A payment stage was confirmed a second time."""

    code: str = "PAYMENT_ALREADY_CONFIRMED"

    def __init__(self, order_id: str, stage: str):
        self.order_id = str(order_id)
        self.stage = stage
        super().__init__(f"{stage.capitalize()} payment already confirmed for order {order_id}")


# Forbidden exceptions


class ForbiddenError(PrivateClientOrderError):
    """Base exception for actors lacking the relationship an action requires."""

    code: str = "FORBIDDEN"


class ActorRoleError(ForbiddenError):
    """Actor's role may not perform the requested action."""

    code: str = "ACTOR_ROLE_NOT_ALLOWED"

    def __init__(self, actor_id: str, role: str, action: str):
        self.actor_id = str(actor_id)
        self.role = role
        self.action = action
        super().__init__(f"Role '{role}' is not allowed to {action}")


class NotOrderOwnerError(ForbiddenError):
    """Partner is acting on an order that belongs to another partner."""

    code: str = "NOT_ORDER_OWNER"

    def __init__(self, order_id: str, partner_id: str | None):
        self.order_id = str(order_id)
        self.partner_id = str(partner_id) if partner_id is not None else None
        super().__init__(f"Order {order_id} does not belong to partner {partner_id}")


class NotAssignedDistributorError(ForbiddenError):
    """Distributor is acting on an order not assigned to them."""

    code: str = "NOT_ASSIGNED_DISTRIBUTOR"

    def __init__(self, order_id: str, distributor_id: str | None):
        self.order_id = str(order_id)
        self.distributor_id = str(distributor_id) if distributor_id is not None else None
        super().__init__(f"Order {order_id} is not assigned to distributor {distributor_id}")


# Validation exceptions


class ValidationError(PrivateClientOrderError):
    """Base exception for malformed or missing input."""

    code: str = "VALIDATION_ERROR"


class InvalidInputError(ValidationError):
    """A single input field failed validation."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class MissingCalculationVariablesError(ValidationError):
    """Calculation requested before variables were configured."""

    code: str = "MISSING_CALCULATION_VARIABLES"

    def __init__(self, session_id: str):
        self.session_id = str(session_id)
        super().__init__("Please configure calculation variables first")


class MissingColumnMappingError(ValidationError):
    """Calculation requested before the required columns were mapped."""

    code: str = "MISSING_COLUMN_MAPPING"

    def __init__(self, session_id: str, missing_fields: Iterable[str]):
        self.session_id = str(session_id)
        self.missing_fields = tuple(missing_fields)
        super().__init__(
            f"Column mapping not configured (missing: {', '.join(self.missing_fields)})"
        )


class NoRawDataError(ValidationError):
    """Pricing session holds no uploaded rows."""

    code: str = "NO_RAW_DATA"

    def __init__(self, session_id: str):
        self.session_id = str(session_id)
        super().__init__("No data found in session. Please upload a file first.")


class NoValidPricedRowsError(ValidationError):
    """Every uploaded row was skipped for lack of a usable price."""

    code: str = "NO_VALID_PRICED_ROWS"

    def __init__(self, session_id: str, row_count: int):
        self.session_id = str(session_id)
        self.row_count = row_count
        super().__init__(
            "No valid products found. Check column mapping and ensure "
            "price column has valid numbers."
        )


# Precondition-failed exceptions


class PreconditionFailedError(PrivateClientOrderError):
    """Base exception for actions whose upstream preconditions are unmet."""

    code: str = "PRECONDITION_FAILED"


class StockNotReadyError(PreconditionFailedError):
    """One or more items are not in an eligible stock status for the action."""

    code: str = "STOCK_NOT_READY"

    def __init__(
        self,
        order_id: str,
        action: str,
        item_statuses: dict[str, str],
        eligible_statuses: Iterable[str],
    ):
        self.order_id = str(order_id)
        self.action = action
        self.item_statuses = dict(item_statuses)
        self.eligible_statuses = tuple(eligible_statuses)
        super().__init__(
            f"Cannot {action} for order {order_id}: {len(self.item_statuses)} item(s) "
            f"not in an eligible stock status ({', '.join(self.eligible_statuses)})"
        )


class DistributorNotAssignedError(PreconditionFailedError):
    """Action requires a distributor to be assigned to the order."""

    code: str = "DISTRIBUTOR_NOT_ASSIGNED"

    def __init__(self, order_id: str):
        self.order_id = str(order_id)
        super().__init__(f"Order {order_id} has no assigned distributor")


# Concurrency exceptions


class ConcurrencyError(PrivateClientOrderError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Conditional write found the row changed since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected: str | None = None):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected = expected
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
