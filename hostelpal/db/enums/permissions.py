"""Role sets used for authorization checks."""

from hostelpal.db.enums.auth import Role

# Status changes, assignment, classification overrides, escalation recipients
ROLES_CAN_TRIAGE = frozenset({Role.STAFF, Role.ADMIN})

# Aggregate reports
ROLES_CAN_VIEW_REPORTS = frozenset({Role.ADMIN})

# Ticket creation
ROLES_CAN_CREATE_TICKETS = frozenset({Role.STUDENT})
