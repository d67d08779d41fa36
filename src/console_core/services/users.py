"""Administration of user profiles.

A profile lives in the profiles collection keyed by the principal's subject
id. Its ``roles`` field is what the permission gate reads, so every write
here is gated on the caller's authority over both the current and the
requested role of the target.
"""

from __future__ import annotations

import logging
from typing import Any

from console_core.audit.changes import has_actual_changes
from console_core.audit.models import AuditAction
from console_core.audit.recorder import AuditRecorder
from console_core.auth.context import Principal
from console_core.auth.gate import PermissionGate, can_create_user_with_role, can_manage_user
from console_core.auth.roles import ROLE_VALUES, Role, RoleSet
from console_core.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from console_core.store.base import DocumentStore, Query
from console_core.utils.time import utc_now_iso

from .base import call_store, modification_stamp, require_id, require_mapping, validate_email

logger = logging.getLogger(__name__)

PROFILE_FIELDS = frozenset({"firstName", "lastName", "email", "phone", "displayName"})
ADMIN_FIELDS = PROFILE_FIELDS | {"role", "status"}
USER_STATUSES = frozenset({"active", "disabled"})


def _validate_role(value: Any) -> str:
    if not isinstance(value, str) or value not in ROLE_VALUES:
        allowed = ", ".join(role.value for role in Role)
        raise InvalidArgument(f"role must be one of: {allowed}")
    return value


def _pick_fields(data: dict[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise InvalidArgument(f"Unsupported fields: {', '.join(unknown)}")
    fields = dict(data)
    if "email" in fields:
        fields["email"] = validate_email(fields["email"])
    if "status" in fields and fields["status"] not in USER_STATUSES:
        raise InvalidArgument(f"status must be one of: {', '.join(sorted(USER_STATUSES))}")
    return fields


class UserAdminService:
    def __init__(
        self,
        store: DocumentStore,
        gate: PermissionGate,
        recorder: AuditRecorder,
        collection: str = "users",
        superuser_missing_target_fallback: bool = True,
    ) -> None:
        self._store = store
        self._gate = gate
        self._recorder = recorder
        self._collection = collection
        self._missing_target_fallback = superuser_missing_target_fallback

    async def list_users(self, principal: Principal | None) -> list[dict[str, Any]]:
        await self._gate.authorize(principal, Role.ADMIN)
        docs = await call_store(
            "list users", self._store.query, self._collection, Query()
        )
        return [{"id": doc.id, **doc.data} for doc in docs]

    async def initialize_first_user(
        self, principal: Principal | None, data: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Make the caller the first superuser of an empty deployment.

        Only allowed while the profiles collection holds no document at all;
        afterwards every role change goes through an administrator.
        """
        principal = self._gate.require_authenticated(principal)
        fields = _pick_fields(require_mapping(data or {}), PROFILE_FIELDS)

        existing = await call_store(
            "list users", self._store.query, self._collection, Query().take(1)
        )
        if existing:
            logger.warning(
                "First-user initialization refused for %s: users already exist",
                principal.subject_id,
            )
            raise FailedPrecondition("Users are already registered.")

        profile: dict[str, Any] = {
            "firstName": None,
            "lastName": None,
            "phone": None,
            "displayName": None,
            "email": principal.email,
            **fields,
            "roles": [Role.SUPERUSER.value],
            "status": "active",
            "created": utc_now_iso(),
            **modification_stamp(principal),
        }
        await call_store(
            "write the user profile",
            self._store.set,
            self._collection,
            principal.subject_id,
            profile,
        )
        await self._recorder.record_action(
            principal,
            entity_type=self._collection,
            entity_id=principal.subject_id,
            action=AuditAction.CREATE,
            after=profile,
            details="Initialized first superuser",
        )
        logger.info("User %s initialized as the first superuser", principal.subject_id)
        return {"id": principal.subject_id, **profile}

    async def provision_user(
        self, principal: Principal | None, subject_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Create the profile for ``subject_id`` with a single role.

        Provisioning over an existing profile replaces it, which needs
        authority over the role it currently holds as well.
        """
        caller = await self._gate.authorize(principal, Role.ADMIN)
        subject_id = require_id(subject_id, "uid")
        fields = _pick_fields(require_mapping(data), ADMIN_FIELDS)
        if "email" not in fields:
            raise InvalidArgument("A valid email address is required.")
        role = _validate_role(fields.pop("role", Role.OPERATOR.value))

        if not can_create_user_with_role(caller, role):
            raise PermissionDenied(f"You cannot create a user with the {role} role.")

        existing = await call_store(
            "read the user profile", self._store.get, self._collection, subject_id
        )
        if existing is not None:
            current = RoleSet.normalize(existing.data.get("roles")).highest
            if not can_manage_user(caller, current):
                raise PermissionDenied("You cannot replace this user's profile.")

        profile: dict[str, Any] = {
            "firstName": None,
            "lastName": None,
            "phone": None,
            "displayName": None,
            "status": "active",
            **fields,
            "roles": [role],
            "created": existing.data.get("created") if existing else utc_now_iso(),
            **modification_stamp(principal),
        }
        await call_store(
            "write the user profile", self._store.set, self._collection, subject_id, profile
        )

        await self._recorder.record_action(
            principal,
            entity_type=self._collection,
            entity_id=subject_id,
            action=AuditAction.UPDATE if existing else AuditAction.CREATE,
            before=existing.data if existing else None,
            after=profile,
        )
        logger.info("User %s provisioned with role %s", subject_id, role)
        return {"id": subject_id, **profile}

    async def update_user(
        self, principal: Principal | None, subject_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        caller = await self._gate.authorize(principal, Role.ADMIN)
        subject_id = require_id(subject_id, "uid")
        fields = _pick_fields(require_mapping(data), ADMIN_FIELDS)

        existing = await call_store(
            "read the user profile", self._store.get, self._collection, subject_id
        )
        if existing is not None:
            before: dict[str, Any] | None = existing.data
            target_role = RoleSet.normalize(existing.data.get("roles")).highest
        elif caller.is_super_user and self._missing_target_fallback:
            logger.warning(
                "Profile %s missing; superuser %s proceeds treating it as operator",
                subject_id,
                principal.subject_id,
            )
            before = None
            target_role = Role.OPERATOR.value
        else:
            raise NotFound("User not found.")

        if not can_manage_user(caller, target_role):
            raise PermissionDenied("You cannot modify this user.")

        if "role" in fields:
            new_role = _validate_role(fields.pop("role"))
            if not can_manage_user(caller, new_role):
                raise PermissionDenied(f"You cannot assign the {new_role} role.")
            fields["roles"] = [new_role]

        after = {**(before or {}), **fields}
        if before is not None and not has_actual_changes(before, after):
            logger.info("Update of user %s changed nothing; skipping write", subject_id)
            return {"id": subject_id, **before}

        stamp = modification_stamp(principal)
        after.update(stamp)
        await call_store(
            "write the user profile",
            self._store.set,
            self._collection,
            subject_id,
            {**fields, **stamp},
            merge=True,
        )
        await self._recorder.record_action(
            principal,
            entity_type=self._collection,
            entity_id=subject_id,
            action=AuditAction.UPDATE,
            before=before,
            after=after,
        )
        return {"id": subject_id, **after}

    async def update_self(
        self, principal: Principal | None, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Let any signed-in user edit their own contact fields."""
        principal = self._gate.require_authenticated(principal)
        data = require_mapping(data)
        if "role" in data or "roles" in data:
            raise PermissionDenied("You cannot change your own role.")
        fields = _pick_fields(data, PROFILE_FIELDS)

        existing = await call_store(
            "read the user profile", self._store.get, self._collection, principal.subject_id
        )
        if existing is None:
            raise NotFound("Profile not found.")

        after = {**existing.data, **fields}
        if not has_actual_changes(existing.data, after):
            return {"id": existing.id, **existing.data}

        stamp = modification_stamp(principal)
        after.update(stamp)
        await call_store(
            "write the user profile",
            self._store.set,
            self._collection,
            principal.subject_id,
            {**fields, **stamp},
            merge=True,
        )
        await self._recorder.record_action(
            principal,
            entity_type=self._collection,
            entity_id=principal.subject_id,
            action=AuditAction.UPDATE,
            before=existing.data,
            after=after,
        )
        return {"id": existing.id, **after}

    async def delete_user(self, principal: Principal | None, subject_id: str) -> None:
        caller = await self._gate.authorize(principal, Role.ADMIN)
        subject_id = require_id(subject_id, "uid")
        if subject_id == principal.subject_id:
            raise PermissionDenied("You cannot delete your own account.")

        existing = await call_store(
            "read the user profile", self._store.get, self._collection, subject_id
        )
        if existing is None:
            raise NotFound("User not found.")
        target_role = RoleSet.normalize(existing.data.get("roles")).highest
        if not can_manage_user(caller, target_role):
            raise PermissionDenied("You cannot delete this user.")

        await call_store(
            "delete the user profile", self._store.delete, self._collection, subject_id
        )
        await self._recorder.record_action(
            principal,
            entity_type=self._collection,
            entity_id=subject_id,
            action=AuditAction.DELETE,
            before=existing.data,
        )
        logger.info("User %s deleted by %s", subject_id, principal.subject_id)
