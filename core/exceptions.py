from typing import Optional


class RollupError(Exception):
    """Base error for project/milestone operations."""


class ValidationError(RollupError):
    pass


class NotFoundError(RollupError):
    pass


class IntegrityError(RollupError):
    """A task is linked to more than one milestone."""


class StoreError(RollupError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
