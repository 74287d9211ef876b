"""Custom exceptions for the Cotizador application."""

class CotizadorError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['error'] = type(self).__name__
        return rv

class BusinessLogicError(CotizadorError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class ValidationError(BusinessLogicError):
    """A required field is missing or invalid before an operation."""

class IncompleteSelectionError(BusinessLogicError):
    """Approval attempted without one selected option per product."""
    def __init__(self, missing, message='Por favor selecciona una opción para cada producto antes de aprobar.'):
        self.missing = list(missing)
        super().__init__(message, payload={'missing': self.missing})

class MissingCommentsError(BusinessLogicError):
    """Revision requested without any comment to guide re-quoting."""
    def __init__(self, message='Por favor añade comentarios específicos para orientar la re-cotización.'):
        super().__init__(message)

class InvalidTransitionError(BusinessLogicError):
    """The quote status does not allow the requested operation."""
    def __init__(self, current, target, message=None):
        self.current = current
        self.target = target
        message = message or f'Transición no permitida: {current} -> {target}'
        super().__init__(message, status_code=409, payload={'current': current, 'target': target})

class ReadOnlyQuoteError(BusinessLogicError):
    """The quote can no longer be edited in its current status."""
    def __init__(self, status):
        self.quote_status = status
        super().__init__(f'La cotización está en estado {status} y no se puede editar.', status_code=409)

class NotFoundError(CotizadorError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class UnauthorizedError(CotizadorError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)

class PermissionDeniedError(UnauthorizedError):
    """The actor's role does not grant the required permission."""
    def __init__(self, permission, message=None):
        self.permission = permission
        super().__init__(message or f'No tienes permiso para: {permission}')

class InactiveUserError(UnauthorizedError):
    """The actor is deactivated."""
    def __init__(self, message='Usuario inactivo'):
        super().__init__(message)

class PersistenceError(CotizadorError):
    """The quote store rejected or failed a call."""
    def __init__(self, operation, quote_id=None, message=None):
        self.operation = operation
        self.quote_id = quote_id
        message = message or f'Error de almacenamiento en {operation} (cotización {quote_id})'
        super().__init__(message, 503, {'operation': operation, 'quote_id': quote_id})
