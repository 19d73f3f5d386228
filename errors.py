from typing import Dict, List, Optional


class TaskTrackerError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code = 500
    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message}


class AuthorizationError(TaskTrackerError):
    status_code = 403
    default_message = "This action is unauthorized."


class NotFoundError(TaskTrackerError):
    status_code = 404
    default_message = "Not found."


class TaskNotFoundError(NotFoundError):
    default_message = "Task not found."


class CategoryNotFoundError(NotFoundError):
    default_message = "Category not found."


class ValidationFailed(TaskTrackerError):
    """Field-level rejection of otherwise well-formed input."""

    status_code = 422
    default_message = "The given data was invalid."

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> dict:
        return {"detail": self.message, "errors": self.errors}


class TaskValidationError(ValidationFailed):
    pass


class CategoryValidationError(ValidationFailed):
    pass


class PersistenceError(TaskTrackerError):
    status_code = 500


class TaskPersistenceError(PersistenceError):
    default_message = "Failed to save task. Please try again later."
