class RouteBuilderError(Exception):
    """Base class for failures scoped to a single builder operation."""

    kind = 'transient'

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(RouteBuilderError):
    """Operator-correctable input problem. Never retried."""

    kind = 'validation'


class DuplicateStopError(ValidationError):
    def __init__(self, message='A stop already exists at this exact location.'):
        super().__init__(message)


class DuplicateRouteStopError(ValidationError):
    def __init__(self, message='This stop is already on the route.'):
        super().__init__(message)


class StoreError(RouteBuilderError):
    """Network or write failure talking to the store."""

    kind = 'transient'


class ReferentialError(RouteBuilderError):
    """The store refused a delete because the row is still referenced."""

    kind = 'referential'
