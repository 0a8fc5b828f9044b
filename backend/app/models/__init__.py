from .auth import User, ProjectMembership, ApiToken
from .projects import Project, BoardColumn, Label, Priority
from .cards import Card, CardMovementLog, card_labels
from .audit import AuditLog

__all__ = [
    'User', 'ProjectMembership', 'ApiToken',
    'Project', 'BoardColumn', 'Label', 'Priority',
    'Card', 'CardMovementLog', 'card_labels',
    'AuditLog',
]
