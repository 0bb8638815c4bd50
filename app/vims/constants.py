"""
Central constants for the VIMS administration back-office.
"""
from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    ADMIN_OFFICER = "ADMIN_OFFICER"
    POLICY_OFFICER = "POLICY_OFFICER"
    CLAIMS_OFFICER = "CLAIMS_OFFICER"
    CUSTOMER_SERVICE = "CUSTOMER_SERVICE"
    FINANCE_OFFICER = "FINANCE_OFFICER"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"

    @property
    def display_name(self) -> str:
        return _ROLE_INFO[self][0]

    @property
    def description(self) -> str:
        return _ROLE_INFO[self][1]

    def is_admin(self) -> bool:
        return self in (UserRole.ADMIN_OFFICER, UserRole.SYSTEM_ADMIN)

    def can_manage_users(self) -> bool:
        return self in (UserRole.ADMIN_OFFICER, UserRole.SYSTEM_ADMIN)

    def can_access_system_config(self) -> bool:
        return self in (UserRole.ADMIN_OFFICER, UserRole.SYSTEM_ADMIN)


_ROLE_INFO = {
    UserRole.ADMIN_OFFICER: ("Admin Officer", "Full system access and user management"),
    UserRole.POLICY_OFFICER: ("Policy Officer", "Policy creation and management"),
    UserRole.CLAIMS_OFFICER: ("Claims Officer", "Claims processing and management"),
    UserRole.CUSTOMER_SERVICE: ("Customer Service", "Customer support and assistance"),
    UserRole.FINANCE_OFFICER: ("Finance Officer", "Financial operations and billing"),
    UserRole.SYSTEM_ADMIN: ("System Administrator", "System configuration and maintenance"),
}


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    BLOCKED = "BLOCKED"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"
    EXPIRED = "EXPIRED"

    @property
    def display_name(self) -> str:
        return _STATUS_INFO[self][0]

    @property
    def description(self) -> str:
        return _STATUS_INFO[self][1]

    def can_access(self) -> bool:
        return self is UserStatus.ACTIVE

    def is_problematic(self) -> bool:
        return self in (UserStatus.BLOCKED, UserStatus.SUSPENDED, UserStatus.EXPIRED)

    def needs_attention(self) -> bool:
        return self in (UserStatus.PENDING, UserStatus.INACTIVE)


_STATUS_INFO = {
    UserStatus.ACTIVE: ("Active", "User is active and can access the system"),
    UserStatus.INACTIVE: ("Inactive", "User account is inactive"),
    UserStatus.BLOCKED: ("Blocked", "User account is blocked by administrator"),
    UserStatus.PENDING: ("Pending", "User account is pending approval"),
    UserStatus.SUSPENDED: ("Suspended", "User account is temporarily suspended"),
    UserStatus.EXPIRED: ("Expired", "User account has expired"),
}


class ConfigurationType(str, enum.Enum):
    SYSTEM = "SYSTEM"
    SECURITY = "SECURITY"
    EMAIL = "EMAIL"
    DATABASE = "DATABASE"
    UI = "UI"
    BUSINESS = "BUSINESS"

    @property
    def display_name(self) -> str:
        return _CONFIG_TYPE_INFO[self][0]

    @property
    def description(self) -> str:
        return _CONFIG_TYPE_INFO[self][1]


_CONFIG_TYPE_INFO = {
    ConfigurationType.SYSTEM: ("System Configuration", "Core system settings"),
    ConfigurationType.SECURITY: ("Security Configuration", "Security-related settings"),
    ConfigurationType.EMAIL: ("Email Configuration", "Email service settings"),
    ConfigurationType.DATABASE: ("Database Configuration", "Database connection settings"),
    ConfigurationType.UI: ("UI Configuration", "User interface settings"),
    ConfigurationType.BUSINESS: ("Business Configuration", "Business logic settings"),
}


# Activity types written by the account lifecycle and login flows
USER_CREATED = "USER_CREATED"
USER_UPDATED = "USER_UPDATED"
USER_BLOCKED = "USER_BLOCKED"
USER_UNBLOCKED = "USER_UNBLOCKED"
USER_DELETED = "USER_DELETED"
PASSWORD_RESET = "PASSWORD_RESET"
ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
ACCOUNT_UNLOCKED = "ACCOUNT_UNLOCKED"
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_FAILED = "LOGIN_FAILED"
LOGOUT = "LOGOUT"

# Role allowed through every administrative endpoint
ADMIN_ROLE = UserRole.ADMIN_OFFICER

# Curated configuration subsets
CRITICAL_CONFIG_KEYS = ("system.name", "system.version", "database.url", "security.jwt.secret")
EMAIL_CONFIG_PREFIXES = ("email.", "mail.")
SECURITY_CONFIG_PREFIXES = ("security.", "auth.")
DATABASE_CONFIG_PREFIXES = ("database.", "db.")
SENSITIVE_KEY_MARKERS = ("password", "secret", "key")

# Runtime-tunable settings stored in the configuration table
CFG_MAX_LOGIN_ATTEMPTS = "security.max_login_attempts"
CFG_LOCKOUT_MINUTES = "security.lockout_minutes"
CFG_RETENTION_DAYS = "activity.retention_days"

SYSTEM_VERSION = "1.0.0"
