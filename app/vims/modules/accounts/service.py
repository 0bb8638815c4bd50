from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.vims import constants as C
from app.vims.constants import UserRole, UserStatus
from app.vims.db import unit_of_work
from app.vims.errors import AccountLockedError, UserAlreadyExistsError, UserNotFoundError, ValidationError
from app.vims.models import User
from app.vims.modules.activities.service import ActivityLog
from app.vims.pagination import Page, PageRequest, fetch
from app.vims.utils import clean_str, isoformat, is_valid_email, utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def user_to_dict(u: User) -> dict[str, Any]:
    """Public representation; never includes the password hash."""
    return {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "full_name": u.full_name,
        "phone_number": u.phone_number,
        "role": u.role.value,
        "role_display": u.role.display_name,
        "status": u.status.value,
        "status_display": u.status.display_name,
        "last_login": isoformat(u.last_login),
        "login_attempts": u.login_attempts,
        "locked_until": isoformat(u.locked_until),
        "account_locked": u.is_account_locked(),
        "can_login": u.can_login(),
        "created_at": isoformat(u.created_at),
        "updated_at": isoformat(u.updated_at),
        "created_by": u.created_by,
        "updated_by": u.updated_by,
        "is_deleted": u.is_deleted,
    }


def parse_role(value: Any) -> UserRole | None:
    v = clean_str(value)
    if v is None:
        return None
    try:
        return UserRole(v.upper())
    except ValueError:
        return None


def parse_status(value: Any) -> UserStatus | None:
    v = clean_str(value)
    if v is None:
        return None
    try:
        return UserStatus(v.upper())
    except ValueError:
        return None


def _validate_password(password: str | None, errors: dict[str, str], field: str = "password") -> None:
    if not password:
        errors[field] = "Password is required."
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors[field] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters."


def validate_user_payload(payload: dict, *, creating: bool) -> dict[str, str]:
    """Validate user creation/update payload. Returns {field: message}."""
    errors: dict[str, str] = {}

    if creating:
        username = clean_str(payload.get("username"))
        if not username:
            errors["username"] = "Username is required."
        elif not 3 <= len(username) <= 50:
            errors["username"] = "Username must be between 3 and 50 characters."
        _validate_password(payload.get("password"), errors)

    email = clean_str(payload.get("email"))
    if not email:
        errors["email"] = "Email is required."
    elif len(email) > 100 or not is_valid_email(email):
        errors["email"] = "Email should be valid."

    for field, label in (("first_name", "First name"), ("last_name", "Last name")):
        v = clean_str(payload.get(field))
        if not v:
            errors[field] = f"{label} is required."
        elif len(v) > 50:
            errors[field] = f"{label} must not exceed 50 characters."

    phone = clean_str(payload.get("phone_number"))
    if phone and len(phone) > 20:
        errors["phone_number"] = "Phone number must not exceed 20 characters."

    role_raw = clean_str(payload.get("role"))
    if role_raw is None:
        if creating:
            errors["role"] = "User role is required."
    elif parse_role(role_raw) is None:
        errors["role"] = f"Invalid role. Must be one of: {', '.join(r.value for r in UserRole)}"

    status_raw = clean_str(payload.get("status"))
    if status_raw is not None and parse_status(status_raw) is None:
        errors["status"] = f"Invalid status. Must be one of: {', '.join(st.value for st in UserStatus)}"

    return errors


class AccountService:
    """
    Account lifecycle manager.

    Each mutation runs in one unit of work together with exactly one activity
    record describing it; if either write fails neither is kept.
    """

    def __init__(
        self,
        s: Session,
        activity_log: ActivityLog | None = None,
        hash_password: Callable[[str], str] = generate_password_hash,
    ) -> None:
        self.s = s
        self.activities = activity_log or ActivityLog(s)
        self.hash_password = hash_password

    # ---------- Lookups ----------
    def get_by_id(self, user_id: int) -> User:
        """Includes soft-deleted accounts."""
        user = self.s.get(User, user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user

    def get_by_username(self, username: str) -> User:
        user = self.s.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if not user:
            raise UserNotFoundError(username, field="username")
        return user

    def find_for_login(self, identifier: str) -> User | None:
        return self.s.execute(
            select(User).where(
                or_(User.username == identifier, User.email == identifier),
                User.is_deleted.is_(False),
            )
        ).scalar_one_or_none()

    def _username_taken(self, username: str) -> bool:
        return self.s.execute(select(User.id).where(User.username == username)).first() is not None

    def _email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        stmt = select(User.id).where(User.email == email)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        return self.s.execute(stmt).first() is not None

    # ---------- Listings (soft-deleted excluded) ----------
    def _active(self):
        return select(User).where(User.is_deleted.is_(False))

    def list_active(self, page: PageRequest | None = None) -> list[User] | Page:
        return fetch(self.s, self._active().order_by(User.username.asc()), page)

    def search(self, term: str, page: PageRequest | None = None) -> list[User] | Page:
        term = (term or "").strip()
        stmt = self._active().where(
            or_(
                User.first_name.icontains(term, autoescape=True),
                User.last_name.icontains(term, autoescape=True),
                User.username.icontains(term, autoescape=True),
            )
        )
        return fetch(self.s, stmt.order_by(User.username.asc()), page)

    def list_by_role(self, role: UserRole, page: PageRequest | None = None) -> list[User] | Page:
        return fetch(self.s, self._active().where(User.role == role).order_by(User.username.asc()), page)

    def list_by_status(self, status: UserStatus, page: PageRequest | None = None) -> list[User] | Page:
        return fetch(self.s, self._active().where(User.status == status).order_by(User.username.asc()), page)

    def list_locked(self) -> list[User]:
        stmt = self._active().where(User.locked_until > utcnow()).order_by(User.locked_until.desc())
        return list(self.s.execute(stmt).scalars().all())

    def list_with_failed_logins(self) -> list[User]:
        stmt = self._active().where(User.login_attempts > 0).order_by(User.login_attempts.desc())
        return list(self.s.execute(stmt).scalars().all())

    # ---------- Counts (soft-deleted excluded) ----------
    def _count(self, *criteria: Any) -> int:
        stmt = select(func.count(User.id)).where(User.is_deleted.is_(False), *criteria)
        return int(self.s.execute(stmt).scalar_one())

    def count(self) -> int:
        return self._count()

    def count_by_role(self, role: UserRole) -> int:
        return self._count(User.role == role)

    def count_by_status(self, status: UserStatus) -> int:
        return self._count(User.status == status)

    # ---------- Mutations ----------
    def create(self, payload: dict, created_by: str | None) -> User:
        errors = validate_user_payload(payload, creating=True)
        if errors:
            raise ValidationError(errors)

        username = clean_str(payload["username"])
        email = clean_str(payload["email"])
        logger.info("Creating new user: %s", username)

        if self._username_taken(username):
            raise UserAlreadyExistsError("username", username)
        if self._email_taken(email):
            raise UserAlreadyExistsError("email", email)

        now = utcnow()
        user = User(
            username=username,
            email=email,
            password_hash=self.hash_password(payload["password"]),
            first_name=clean_str(payload.get("first_name")),
            last_name=clean_str(payload.get("last_name")),
            phone_number=clean_str(payload.get("phone_number")),
            role=parse_role(payload.get("role")),
            status=parse_status(payload.get("status")) or UserStatus.PENDING,
            login_attempts=0,
            is_deleted=False,
            created_at=now,
            updated_at=now,
            created_by=created_by,
            updated_by=created_by,
        )
        with unit_of_work(self.s):
            self.s.add(user)
            self._flush_unique(username=username, email=email)
            self.activities.record_success(user, C.USER_CREATED, "User account created successfully")
        logger.info("User created successfully: %s", user.username)
        return user

    def update(self, user_id: int, payload: dict, updated_by: str | None) -> User:
        user = self.get_by_id(user_id)
        errors = validate_user_payload(payload, creating=False)
        if errors:
            raise ValidationError(errors)

        email = clean_str(payload["email"])
        logger.info("Updating user: %s", user_id)
        if self._email_taken(email, exclude_id=user.id):
            raise UserAlreadyExistsError("email", email)

        changes: dict[str, dict[str, Any]] = {}

        def _set(attr: str, new: Any) -> None:
            old = getattr(user, attr)
            if new != old:
                changes[attr] = {
                    "old": old.value if hasattr(old, "value") else old,
                    "new": new.value if hasattr(new, "value") else new,
                }
                setattr(user, attr, new)

        with unit_of_work(self.s):
            _set("email", email)
            _set("first_name", clean_str(payload.get("first_name")))
            _set("last_name", clean_str(payload.get("last_name")))
            _set("phone_number", clean_str(payload.get("phone_number")))
            role = parse_role(payload.get("role"))
            if role is not None:
                _set("role", role)
            status = parse_status(payload.get("status"))
            if status is not None:
                _set("status", status)
            user.updated_by = updated_by
            user.updated_at = utcnow()
            self._flush_unique(email=email)
            self.activities.record_success(
                user, C.USER_UPDATED, "User account updated successfully", additional_data={"changes": changes}
            )
        logger.info("User updated successfully: %s", user.username)
        return user

    def block(self, user_id: int, blocked_by: str | None) -> User:
        logger.info("Blocking user: %s", user_id)
        user = self._transition(
            user_id,
            blocked_by,
            C.USER_BLOCKED,
            "User account blocked by administrator",
            lambda u: setattr(u, "status", UserStatus.BLOCKED),
        )
        logger.info("User blocked successfully: %s", user.username)
        return user

    def unblock(self, user_id: int, unblocked_by: str | None) -> User:
        # Always lands on ACTIVE; the pre-block status is not restored.
        logger.info("Unblocking user: %s", user_id)
        user = self._transition(
            user_id,
            unblocked_by,
            C.USER_UNBLOCKED,
            "User account unblocked by administrator",
            lambda u: setattr(u, "status", UserStatus.ACTIVE),
        )
        logger.info("User unblocked successfully: %s", user.username)
        return user

    def soft_delete(self, user_id: int, deleted_by: str | None) -> User:
        logger.info("Deleting user: %s", user_id)
        user = self._transition(
            user_id,
            deleted_by,
            C.USER_DELETED,
            "User account deleted by administrator",
            lambda u: setattr(u, "is_deleted", True),
        )
        logger.info("User deleted successfully: %s", user.username)
        return user

    def reset_password(self, user_id: int, new_password: str, reset_by: str | None) -> User:
        user = self.get_by_id(user_id)
        errors: dict[str, str] = {}
        _validate_password(new_password, errors, field="new_password")
        if errors:
            raise ValidationError(errors)
        logger.info("Resetting password for user: %s", user_id)
        user = self._transition(
            user_id,
            reset_by,
            C.PASSWORD_RESET,
            "User password reset by administrator",
            lambda u: setattr(u, "password_hash", self.hash_password(new_password)),
        )
        logger.info("Password reset successfully for user: %s", user.username)
        return user

    def lock_account(self, user_id: int, minutes: int, locked_by: str | None) -> User:
        """Non-positive minutes leave the account effectively unlocked."""
        try:
            until = utcnow() + timedelta(minutes=minutes)
        except OverflowError as e:
            raise ValidationError({"minutes": "Lock duration is out of range."}) from e

        logger.info("Locking user account: %s for %s minutes", user_id, minutes)
        user = self._transition(
            user_id,
            locked_by,
            C.ACCOUNT_LOCKED,
            f"User account locked for {minutes} minutes",
            lambda u: setattr(u, "locked_until", until),
        )
        logger.info("User account locked successfully: %s", user.username)
        return user

    def unlock_account(self, user_id: int, unlocked_by: str | None) -> User:
        def _unlock(u: User) -> None:
            u.locked_until = None
            u.login_attempts = 0

        logger.info("Unlocking user account: %s", user_id)
        user = self._transition(
            user_id, unlocked_by, C.ACCOUNT_UNLOCKED, "User account unlocked by administrator", _unlock
        )
        logger.info("User account unlocked successfully: %s", user.username)
        return user

    def _transition(
        self,
        user_id: int,
        actor: str | None,
        activity_type: str,
        description: str,
        apply: Callable[[User], None],
    ) -> User:
        user = self.get_by_id(user_id)
        with unit_of_work(self.s):
            apply(user)
            user.updated_by = actor
            user.updated_at = utcnow()
            self.activities.record_success(user, activity_type, description, additional_data={"by": actor})
        return user

    def _flush_unique(self, *, username: str | None = None, email: str | None = None) -> None:
        """
        Flush pending writes, turning a unique-constraint violation into
        UserAlreadyExistsError. The constraint is authoritative over the pre-check.
        """
        try:
            self.s.flush()
        except IntegrityError as e:
            detail = str(e.orig).lower()
            if email and "email" in detail:
                raise UserAlreadyExistsError("email", email) from e
            if username:
                raise UserAlreadyExistsError("username", username) from e
            raise UserAlreadyExistsError("email", email or "") from e

    # ---------- Login ----------
    def authenticate(
        self,
        identifier: str,
        password: str,
        *,
        max_attempts: int,
        lockout_minutes: int,
    ) -> User | None:
        """
        Check credentials for the login flow. Returns the user on success, None
        on bad credentials or an account that may not log in. Raises
        AccountLockedError while the account is locked.
        """
        user = self.find_for_login(identifier)
        if not user:
            return None

        if user.is_account_locked():
            with unit_of_work(self.s):
                self.activities.record_failure(
                    user, C.LOGIN_FAILED, "Login attempt on locked account", "Account locked"
                )
            raise AccountLockedError(
                f"Account is locked until {user.locked_until.isoformat()}", locked_until=user.locked_until
            )

        if not check_password_hash(user.password_hash, password):
            with unit_of_work(self.s):
                user.login_attempts = (user.login_attempts or 0) + 1
                description = "Invalid password"
                if max_attempts > 0 and user.login_attempts >= max_attempts:
                    user.locked_until = utcnow() + timedelta(minutes=lockout_minutes)
                    description = f"Invalid password; account locked for {lockout_minutes} minutes"
                    logger.warning("Locking %s after %s failed logins", user.username, user.login_attempts)
                self.activities.record_failure(
                    user,
                    C.LOGIN_FAILED,
                    description,
                    "Invalid credentials",
                    additional_data={"login_attempts": user.login_attempts},
                )
            return None

        if not user.can_login():
            with unit_of_work(self.s):
                self.activities.record_failure(
                    user, C.LOGIN_FAILED, "Login attempt on inactive account", f"Account status {user.status.value}"
                )
            return None

        with unit_of_work(self.s):
            user.login_attempts = 0
            user.last_login = utcnow()
            self.activities.record_success(user, C.LOGIN_SUCCESS, "User logged in successfully")
        return user
