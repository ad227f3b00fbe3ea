"""
Operator identity as seen by the domain services.

Services never touch request.user; views convert it once into an
Operator value and pass that down.
"""
from dataclasses import dataclass
import uuid


@dataclass(frozen=True)
class Operator:
    """The authenticated staff member performing an action."""
    id: uuid.UUID
    display_name: str


def operator_from_user(user):
    """Build an Operator from an authenticated User."""
    return Operator(id=user.pk, display_name=user.get_full_name())
