"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Invalid input (pure-function arguments, malformed store rows)
  2xxx: Aggregation / cache refresh
  3xxx: Realtime subscription
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Invalid input ---

class InvalidInputError(AppError):
    """Bad argument to a pure function. Never retried."""

    def __init__(self, detail: str, code: int = 1001) -> None:
        super().__init__(code, f"Invalid input: {detail}", 422)


class MalformedRecordError(InvalidInputError):
    def __init__(self, record_id: object, detail: str) -> None:
        self.record_id = record_id
        super().__init__(f"collection record {record_id!r}: {detail}", code=1002)


# --- 2xxx: Aggregation ---

class AggregationError(AppError):
    """Store round trip failed. `retryable` is False when retrying cannot help."""

    def __init__(self, user_id: str, detail: str, retryable: bool = True) -> None:
        self.user_id = user_id
        self.retryable = retryable
        super().__init__(2001, f"Wallet aggregation failed for user {user_id}: {detail}", 503)


class RefreshSupersededError(AppError):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(
            2002, f"Wallet refresh for user {user_id} was superseded by a user switch", 409
        )


# --- 3xxx: Realtime ---

class SubscriptionError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3001, f"Realtime subscription failed: {detail}", 503)
