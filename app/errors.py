"""
Error taxonomy for the gateway.

Each error carries the HTTP status the routers report it with.
CollisionFeedError is the only one that is recovered locally: the allocator
and the status check treat an unreachable feed as "no credits".
"""


class GatewayError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedPayloadError(GatewayError):
    """The static QR payload cannot be rewritten into a dynamic one."""

    status_code = 422


class InvalidStateError(GatewayError):
    status_code = 400

    def __init__(self, current_status: str, message: str = None):
        super().__init__(message or f"Cannot change transaction with status: {current_status}")
        self.current_status = current_status


class NotFoundError(GatewayError):
    status_code = 404

    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction {transaction_id} not found")
        self.transaction_id = transaction_id


class DuplicateTransactionError(GatewayError):
    status_code = 409

    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction {transaction_id} already exists")
        self.transaction_id = transaction_id


class CollisionFeedError(GatewayError):
    """Settlement feed unreachable or returned something unusable."""

    status_code = 502


class ConfigurationMissingError(GatewayError):
    status_code = 500

    def __init__(self, setting: str, message: str):
        super().__init__(message)
        self.setting = setting
