"""Domain exceptions shared across apps."""
from django.core.exceptions import ValidationError


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f'{entity} {identifier} not found')


class BusinessRuleError(ValidationError):
    """Base class for business rule violations raised by services."""
    error_type = 'business_rule'
