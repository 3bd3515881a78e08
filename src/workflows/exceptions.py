"""
Workflow exceptions.

Workflows catch these and turn them into failed ``WorkflowResult``s; the
registrar layer never raises them.
"""


class WorkflowError(Exception):
    """Base exception for lifecycle workflow errors"""

    default_code = "WORKFLOW_ERROR"

    def __init__(self, message: str, error_code: str = None):
        self.message = message
        self.error_code = error_code or self.default_code
        super().__init__(self.message)


class WorkflowStateConflict(WorkflowError):
    """Raised when an operation is attempted from an invalid lifecycle state"""

    default_code = "STATE_CONFLICT"

    def __init__(self, current_state: str, target_state: str, message: str = None):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(message or f"Cannot move order from {current_state} to {target_state}")


class OrderNotFoundError(WorkflowError):
    """Raised when an order id is unknown to the order store"""
    default_code = "ORDER_NOT_FOUND"


class ManagedDomainNotFoundError(WorkflowError):
    """Raised when a domain id is unknown to the order store"""
    default_code = "DOMAIN_NOT_FOUND"
