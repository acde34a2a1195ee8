"""
Scheduling Errors

Error taxonomy shared by the booking and key custody domains. All of them
are expected outcomes of a request, not defects: callers map them to user
facing responses.
"""


class SchedulingError(Exception):
    """Base class for errors raised by the scheduling engine."""

    code = 'scheduling_error'

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'code': self.code, 'detail': self.message}


class BookingValidationError(SchedulingError):
    """Malformed request: bad interval, unknown resource or key, limits exceeded."""

    code = 'validation_error'


class NotFoundError(SchedulingError):
    """Referenced booking, resource, key or transaction does not exist."""

    code = 'not_found'


class BookingConflictError(SchedulingError):
    """
    The requested slot cannot be granted

    Carries the conflicts found and advisory suggestions so the caller can
    offer alternatives.
    """

    code = 'conflict'

    def __init__(self, message: str, conflicts=None, suggestions=None):
        super().__init__(message)
        self.conflicts = list(conflicts or [])
        self.suggestions = list(suggestions or [])

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['conflicts'] = [conflict.to_dict() for conflict in self.conflicts]
        data['suggestions'] = [suggestion.to_dict() for suggestion in self.suggestions]
        return data


class IneligibleTransitionError(SchedulingError):
    """A state machine guard rejected the requested transition."""

    code = 'ineligible_transition'

    def __init__(self, message: str, current: str = '', target: str = ''):
        super().__init__(message)
        self.current = current
        self.target = target

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['current_status'] = self.current
        data['target_status'] = self.target
        return data


class KeyAlreadyCheckedOutError(SchedulingError):
    """The key already has an open custody transaction."""

    code = 'key_already_checked_out'

    def __init__(self, message: str, transaction_id=None):
        super().__init__(message)
        self.transaction_id = transaction_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['open_transaction_id'] = self.transaction_id
        return data
