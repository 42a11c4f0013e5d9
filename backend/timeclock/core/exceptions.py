"""
Work session error taxonomy.

Services raise these; only the API layer turns them into HTTP responses.
Each error carries a machine readable code and a user-facing message.
"""
from typing import Optional


class WorkSessionError(Exception):
    """Base exception for work session operations."""
    code = "WORK_SESSION_ERROR"
    default_message = "Ocurrió un error con la sesión de trabajo."

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(WorkSessionError):
    """An operation's precondition is violated locally; nothing was written."""
    code = "VALIDATION_ERROR"
    default_message = "La operación no es válida en el estado actual."


class AlreadyActiveError(ValidationError):
    """start() while a session is already tracked."""
    code = "ACTIVE_SESSION_EXISTS"
    default_message = "Ya hay una sesión activa."


class OperationInProgressError(ValidationError):
    """Another state-changing operation is still in flight."""
    code = "OPERATION_IN_PROGRESS"
    default_message = "Otra operación está en curso. Inténtalo de nuevo."


class NoActiveSessionError(ValidationError):
    """end() without a tracked session."""
    code = "NO_ACTIVE_SESSION"
    default_message = "No hay ninguna sesión activa."


class RecoveryWindowExceededError(ValidationError):
    """recover_session() on a session that could no longer be completed."""
    code = "RECOVERY_WINDOW_EXCEEDED"
    default_message = "La sesión es demasiado antigua para recuperarla. Descártala."


class UnauthenticatedError(WorkSessionError):
    """No resolvable owner identity."""
    code = "UNAUTHENTICATED"
    default_message = "No hay ningún usuario autenticado."


class ConstraintViolation(WorkSessionError):
    """The store rejected a write because it breaks a business invariant."""
    code = "CONSTRAINT_VIOLATION"
    default_message = "La operación viola una restricción de la sesión."


class NotFoundError(WorkSessionError):
    """An expected row is missing."""
    code = "NOT_FOUND"
    default_message = "No se encontró el registro solicitado."


class TransientPersistenceError(WorkSessionError):
    """Store or network failure unrelated to business rules."""
    code = "PERSISTENCE_UNAVAILABLE"
    default_message = "No se pudo guardar. Inténtalo de nuevo más tarde."
