# Overview: Permission vocabulary. One enum per module plus the module enum itself.

from enum import Enum


class PermissionModule(Enum):
    """Top-level buckets of a Role's permissions document."""
    PAGES = "Pages"
    SETTINGS = "Settings"
    USERS = "Users"
    CLIENTS = "Clients"


class Page(Enum):
    """Pages bucket: one boolean per navigable page."""
    DASHBOARD = "Dashboard"
    CLIENTS = "Clients"
    USERS = "Users"
    SERVICES = "Services"
    ACTIVITIES = "Activities"
    SETTINGS = "Settings"


class SettingsArea(Enum):
    """Settings bucket: one boolean per settings sub-area."""
    ROLES = "Roles"
    AUTOVATION_CLIENTS = "Autovation Clients"
    NOTIFICATIONS = "Notifications"
    SYSTEM_MAINTENANCE_EMAIL = "System Maintenance Email"
    SMTP_CREDENTIALS = "SMTP Credentials"
    VOICEMAIL_SFTP_CREDENTIALS = "Voicemail SFTP Credentials"
    VICIDIAL_CREDENTIALS = "Vicidial Credentials"
    SITE_CUSTOMIZATION = "Site Customization"


class CrudAction(Enum):
    CREATE = "Create"
    READ = "Read"
    UPDATE = "Update"
    DELETE = "Delete"
