class SchedulingError(Exception):
    """Base class for errors reported to the caller of the scheduling core."""

    status_code = 400
    kind = 'error'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {'ok': False, 'error': self.kind, 'message': self.message}
        if self.details:
            body.update(self.details)
        return body


class ValidationError(SchedulingError):
    status_code = 400
    kind = 'validation_error'


class NotFoundError(SchedulingError):
    status_code = 404
    kind = 'not_found'


class ConflictError(SchedulingError):
    """Overlap with an active session of the same trainer on the same date."""

    status_code = 409
    kind = 'conflict'

    def __init__(self, message, client_name=None, session_date=None,
                 session_time=None, session_id=None):
        super().__init__(message)
        self.client_name = client_name
        self.session_date = session_date
        self.session_time = session_time
        self.session_id = session_id

    def to_dict(self):
        body = super().to_dict()
        body['conflict'] = {
            'session_id': self.session_id,
            'client_name': self.client_name,
            'session_date': self.session_date.isoformat() if self.session_date else None,
            'session_time': self.session_time,
        }
        return body


class InfrastructureError(SchedulingError):
    status_code = 503
    kind = 'infrastructure_error'

    def __init__(self, message='Scheduling is temporarily unavailable, please retry.', **details):
        super().__init__(message, **details)
