from .auth import User, Role, user_managers
from .clients import Client, ClientAssignment
from .security import SecurityEvent

__all__ = [
    'User', 'Role', 'user_managers',
    'Client', 'ClientAssignment',
    'SecurityEvent',
]
