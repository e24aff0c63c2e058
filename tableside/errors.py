# tableside/errors.py
from __future__ import annotations


class OrderingError(RuntimeError):
    """Base for every failure of a single diner action.

    None of these are fatal: the action is aborted with state unchanged.
    `surfaced` tells the presentation layer whether to show `user_message`.
    """

    user_message = "Something went wrong. Please try again."
    surfaced = True
    retryable = False

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.user_message)


class ItemNotFound(OrderingError):
    user_message = "That item is no longer on the menu."

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class EmptyCart(OrderingError):
    user_message = "Your cart is empty!"


class NoTable(OrderingError):
    user_message = "Please select your table number first!"


class SubmissionInProgress(OrderingError):
    # the diner already has one order in flight
    user_message = "Sending to kitchen..."
    surfaced = False


class SubmissionFailed(OrderingError):
    user_message = "Failed to place order. Please try again."
    retryable = True


class NothingToBill(OrderingError):
    user_message = "No orders placed in this session. Add some items first!"


class UnsubmittedCart(OrderingError):
    user_message = "Please place your current cart order before ending the session."


class MalformedPersistedState(OrderingError):
    surfaced = False

    def __init__(self, key: str, reason: str = "") -> None:
        self.key = key
        super().__init__(f"Malformed persisted value for {key!r}: {reason}".rstrip(": "))
