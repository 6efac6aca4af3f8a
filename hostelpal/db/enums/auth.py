"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    User roles.

    - STUDENT: Files tickets and comments on their own tickets
    - STAFF: Triage and resolution of tickets
    - ADMIN: Staff privileges plus reports
    """

    STUDENT = "student"
    STAFF = "staff"
    ADMIN = "admin"
