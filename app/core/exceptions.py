"""
Workflow error taxonomy.

Services raise these; ``app.main`` renders them as ``ErrorResponse`` bodies.
``SideEffectFailure`` is never rendered: callers turn it into a warning on an
otherwise successful result.
"""

from typing import Optional


class WorkflowError(Exception):
    status_code: int = 400
    error: str = "workflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(WorkflowError):
    status_code = 404
    error = "not_found"


class ValidationError(WorkflowError):
    status_code = 422
    error = "validation_error"


class PermissionDenied(WorkflowError):
    status_code = 403
    error = "permission_denied"


class SlotConflict(WorkflowError):
    status_code = 409
    error = "slot_conflict"


class PromotionConflict(SlotConflict):
    """An approved payment approval could not be promoted: the slot is taken."""

    error = "promotion_conflict"


class InvalidTransition(WorkflowError):
    status_code = 409
    error = "invalid_transition"

    def __init__(self, message: str, current: Optional[str] = None, requested: Optional[str] = None):
        super().__init__(message)
        self.current = current
        self.requested = requested


class DependencyFailure(WorkflowError):
    status_code = 503
    error = "dependency_failure"


class SideEffectFailure(WorkflowError):
    error = "side_effect_failure"
