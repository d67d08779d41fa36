from __future__ import annotations

import pytest

from console_core.errors import InvalidArgument, NotFound, PermissionDenied, Unauthenticated
from console_core.services.users import UserAdminService
from console_core.store.base import Query


def _audit(store) -> list:
    return store.query("audit_logs", Query())


@pytest.fixture
def users(context):
    return context.users


@pytest.fixture(autouse=True)
def _staff(seed_profile) -> None:
    seed_profile("su", ["superuser"])
    seed_profile("adm", "admin")
    seed_profile("adm2", ["admin"])
    seed_profile("op", "operator")


@pytest.mark.asyncio
async def test_list_users_requires_admin(users, principal) -> None:
    listed = await users.list_users(principal("adm"))
    assert {user["id"] for user in listed} == {"su", "adm", "adm2", "op"}
    with pytest.raises(PermissionDenied):
        await users.list_users(principal("op"))
    with pytest.raises(Unauthenticated):
        await users.list_users(None)


@pytest.mark.asyncio
async def test_admin_provisions_operator(users, store, principal) -> None:
    profile = await users.provision_user(
        principal("adm"), "new1", {"email": "new1@example.com", "firstName": "Nia"}
    )

    assert profile["roles"] == ["operator"]
    stored = store.get("users", "new1").data
    assert stored["firstName"] == "Nia"
    assert stored["status"] == "active"
    assert stored["lastModifiedBy"] == "adm"

    (entry,) = _audit(store)
    assert entry.data["action"] == "create"
    assert entry.data["entityType"] == "users"
    assert entry.data["entityId"] == "new1"
    assert entry.data["actorId"] == "adm"


@pytest.mark.asyncio
async def test_admin_cannot_provision_admin(users, store, principal) -> None:
    with pytest.raises(PermissionDenied):
        await users.provision_user(
            principal("adm"), "new2", {"email": "n@example.com", "role": "admin"}
        )
    assert store.get("users", "new2") is None
    assert _audit(store) == []


@pytest.mark.asyncio
async def test_admin_cannot_overwrite_existing_admin(users, principal) -> None:
    with pytest.raises(PermissionDenied):
        await users.provision_user(principal("adm"), "adm2", {"email": "x@example.com"})


@pytest.mark.asyncio
async def test_superuser_provisions_superuser(users, principal) -> None:
    profile = await users.provision_user(
        principal("su"), "boss", {"email": "boss@example.com", "role": "superuser"}
    )
    assert profile["roles"] == ["superuser"]


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"email": "not-an-email"},
        {"email": "a@example.com", "role": "owner"},
        {"email": "a@example.com", "salary": 1},
        {"email": "a@example.com", "status": "archived"},
    ],
)
@pytest.mark.asyncio
async def test_provision_validation(users, principal, data) -> None:
    with pytest.raises(InvalidArgument):
        await users.provision_user(principal("su"), "x1", data)


@pytest.mark.asyncio
async def test_admin_updates_operator(users, store, principal) -> None:
    profile = await users.update_user(principal("adm"), "op", {"phone": "555"})
    assert profile["phone"] == "555"
    assert store.get("users", "op").data["phone"] == "555"

    (entry,) = _audit(store)
    assert entry.data["action"] == "update"
    assert entry.data["beforeState"].get("phone") is None
    assert entry.data["afterState"]["phone"] == "555"


@pytest.mark.asyncio
async def test_admin_cannot_update_peer_or_promote(users, principal) -> None:
    with pytest.raises(PermissionDenied):
        await users.update_user(principal("adm"), "adm2", {"phone": "1"})
    with pytest.raises(PermissionDenied):
        await users.update_user(principal("adm"), "op", {"role": "admin"})


@pytest.mark.asyncio
async def test_multi_role_target_uses_highest_role(users, seed_profile, principal) -> None:
    seed_profile("mixed", ["operator", "admin"])
    with pytest.raises(PermissionDenied):
        await users.update_user(principal("adm"), "mixed", {"phone": "1"})


@pytest.mark.asyncio
async def test_no_op_update_writes_no_audit(users, store, principal) -> None:
    await users.update_user(principal("adm"), "op", {"email": "op@example.com"})
    assert _audit(store) == []


@pytest.mark.asyncio
async def test_update_missing_target_is_not_found_for_admin(users, principal) -> None:
    with pytest.raises(NotFound):
        await users.update_user(principal("adm"), "ghost", {"phone": "1"})


@pytest.mark.asyncio
async def test_superuser_missing_target_fallback(users, store, principal, caplog) -> None:
    with caplog.at_level("WARNING"):
        profile = await users.update_user(principal("su"), "ghost", {"role": "admin"})

    assert profile["roles"] == ["admin"]
    assert store.get("users", "ghost").data["roles"] == ["admin"]
    assert "treating it as operator" in caplog.text
    (entry,) = _audit(store)
    assert entry.data["beforeState"] is None


@pytest.mark.asyncio
async def test_superuser_fallback_can_be_disabled(context, principal) -> None:
    strict = UserAdminService(
        context.store, context.gate, context.recorder, superuser_missing_target_fallback=False
    )
    with pytest.raises(NotFound):
        await strict.update_user(principal("su"), "ghost", {"phone": "1"})


@pytest.mark.asyncio
async def test_promotion_takes_effect_immediately(context, principal) -> None:
    with pytest.raises(PermissionDenied):
        await context.users.list_users(principal("op"))

    await context.users.update_user(principal("su"), "op", {"role": "admin"})

    assert await context.users.list_users(principal("op"))


@pytest.mark.asyncio
async def test_update_self(users, store, principal) -> None:
    profile = await users.update_self(principal("op"), {"displayName": "Olly"})
    assert profile["displayName"] == "Olly"
    (entry,) = _audit(store)
    assert entry.data["entityId"] == "op"
    assert entry.data["actorId"] == "op"


@pytest.mark.asyncio
async def test_update_self_cannot_change_roles(users, principal) -> None:
    with pytest.raises(PermissionDenied):
        await users.update_self(principal("op"), {"roles": ["superuser"]})
    with pytest.raises(InvalidArgument):
        await users.update_self(principal("op"), {"status": "disabled"})
    with pytest.raises(NotFound):
        await users.update_self(principal("nobody"), {"phone": "1"})
    with pytest.raises(Unauthenticated):
        await users.update_self(None, {"phone": "1"})


@pytest.mark.asyncio
async def test_delete_user(users, store, principal) -> None:
    await users.delete_user(principal("adm"), "op")
    assert store.get("users", "op") is None
    (entry,) = _audit(store)
    assert entry.data["action"] == "delete"
    assert entry.data["beforeState"]["roles"] == "operator"
    assert entry.data["afterState"] is None


@pytest.mark.asyncio
async def test_delete_rules(users, principal) -> None:
    with pytest.raises(PermissionDenied, match="your own"):
        await users.delete_user(principal("su"), "su")
    with pytest.raises(NotFound):
        await users.delete_user(principal("su"), "ghost")
    with pytest.raises(PermissionDenied):
        await users.delete_user(principal("adm"), "adm2")
    with pytest.raises(PermissionDenied):
        await users.delete_user(principal("op"), "adm")
