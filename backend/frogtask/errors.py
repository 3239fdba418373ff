from __future__ import annotations

from typing import Any, Dict


class FrogTaskError(Exception):
    """Base class for every failure surfaced by the FrogTask core."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update(self.context)
        return payload


class ValidationError(FrogTaskError):
    """Malformed input. Always fixable by the caller."""

    status_code = 400
    code = "validation_error"


class PreconditionFailed(FrogTaskError):
    """A business rule rejected an otherwise well-formed request."""

    status_code = 409
    code = "precondition_failed"


class NotFound(FrogTaskError):
    status_code = 404
    code = "not_found"


class TransientInfraError(FrogTaskError):
    status_code = 503
    code = "transient_infra_error"


class InvariantViolation(FrogTaskError):
    """Configuration or data problem that should page someone."""

    status_code = 500
    code = "invariant_violation"


class InvalidTradeSet(ValidationError):
    code = "invalid_trade_set"


class SlotMismatch(ValidationError):
    code = "slot_mismatch"


class NoRewardDefined(ValidationError):
    code = "no_reward_defined"


class NotForSale(ValidationError):
    code = "not_for_sale"


class InsufficientFunds(PreconditionFailed):
    code = "insufficient_funds"

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"Insufficient flies: required {required}, available {available}",
            required=required,
            available=available,
        )


class InsufficientInventory(PreconditionFailed):
    code = "insufficient_inventory"

    def __init__(self, item_id: str, required: int, available: int) -> None:
        super().__init__(
            f"Not enough {item_id}: required {required}, available {available}",
            item_id=item_id,
            required=required,
            available=available,
        )


class NotOwned(PreconditionFailed):
    code = "not_owned"


class GiftLimitReached(PreconditionFailed):
    code = "gift_limit_reached"


class MilestoneNotReached(PreconditionFailed):
    code = "milestone_not_reached"

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"Complete {required} tasks to unlock the next gift ({available} done)",
            required=required,
            available=available,
        )


class WrongDay(PreconditionFailed):
    code = "wrong_day"


class AlreadyClaimed(PreconditionFailed):
    code = "already_claimed"


class AccountNotFound(NotFound):
    code = "account_not_found"

    def __init__(self, account_id: Any) -> None:
        super().__init__("Account not found", account_id=str(account_id))


class UnknownItem(NotFound):
    code = "unknown_item"

    def __init__(self, item_id: Any) -> None:
        super().__init__(f"Unknown item: {item_id}", item_id=str(item_id))


class StorageError(TransientInfraError):
    code = "storage_unavailable"


class PushDeliveryError(TransientInfraError):
    code = "push_delivery_failed"


class InvalidPushToken(PushDeliveryError):
    """The push provider reports the device token as permanently unusable."""

    code = "invalid_push_token"


class NoRewardAvailable(InvariantViolation):
    code = "no_reward_available"
