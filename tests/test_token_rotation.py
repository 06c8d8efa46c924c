import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from domain.common.exceptions import (
    AccountDisabledException,
    InvalidTokenException,
    PersistenceException,
    TokenExpiredException,
    TokenReuseDetectedException,
)
from domain.user.refresh_token import RefreshToken, utcnow
from infrastructure.repositories.refresh_token_repository import SQLAlchemyRefreshTokenRepository


pytestmark = pytest.mark.asyncio


async def _login(svc, email="a@x.com", password="Secret123"):
    result = await svc.auth.login(email, password, "10.0.0.1", "pytest")
    assert result.success, result.error
    return result.data


async def _family(svc, family):
    async with svc.uow_factory(readonly=True) as uow:
        return await uow.refresh_token_repository.list_by_family(family)


async def _token(svc, value):
    async with svc.uow_factory(readonly=True) as uow:
        return await uow.refresh_token_repository.get_by_value(value)


async def test_login_starts_fresh_family(services, make_user):
    await make_user(services, "a@x.com")
    await make_user(services, "b@x.com")

    first = await _login(services, "a@x.com")
    second = await _login(services, "a@x.com")
    other = await _login(services, "b@x.com")

    tokens = [await _token(services, r.refresh_token) for r in (first, second, other)]
    assert all(t.rotation_count == 0 for t in tokens)
    assert len({t.family for t in tokens}) == 3


async def test_rotation_scenario(services, make_user):
    await make_user(services, "a@x.com")
    login = await _login(services, "a@x.com")
    t0 = await _token(services, login.refresh_token)
    assert t0.rotation_count == 0

    access, t1 = await services.tokens.refresh_token(t0.token_value, "10.0.0.2", "pytest")
    assert services.issuer.verify(access).user_id == t0.user_id
    assert t1.family == t0.family
    assert t1.rotation_count == 1
    assert t1.token_value != t0.token_value

    rotated = await _token(services, t0.token_value)
    assert rotated.revoked_at is not None
    assert rotated.replaced_by_token_id == t1.id
    assert (await _token(services, t1.token_value)).ip_address == "10.0.0.2"

    # 旧令牌再次出现：重用检测，整个家族被撤销
    with pytest.raises(TokenReuseDetectedException):
        await services.tokens.refresh_token(t0.token_value, "6.6.6.6", "attacker")

    family = await _family(services, t0.family)
    assert [t.rotation_count for t in family] == [0, 1]
    assert all(t.revoked_at is not None for t in family)

    with pytest.raises((InvalidTokenException, TokenReuseDetectedException)):
        await services.tokens.refresh_token(t1.token_value, "10.0.0.2")


async def test_reuse_revocation_is_persisted(services, make_user):
    await make_user(services)
    login = await _login(services)
    _, t1 = await services.tokens.refresh_token(login.refresh_token)
    _, t2 = await services.tokens.refresh_token(t1.token_value)

    with pytest.raises(TokenReuseDetectedException) as exc_info:
        await services.tokens.refresh_token(login.refresh_token)
    assert exc_info.value.details == {"revoked_count": 1}

    # 新的工作单元中重新读取，确认撤销已提交而非随异常回滚
    assert await services.tokens.validate_refresh_token(t2.token_value) is None
    assert all(t.revoked_at is not None for t in await _family(services, t2.family))


async def test_unknown_token_is_invalid(services):
    with pytest.raises(InvalidTokenException):
        await services.tokens.refresh_token("does-not-exist")
    with pytest.raises(InvalidTokenException):
        await services.tokens.refresh_token("")


async def test_expired_token_is_not_mutated(services, make_user):
    user = await make_user(services)
    expired = RefreshToken.issue(user.id, timedelta(days=7), now=utcnow() - timedelta(days=8))
    async with services.uow_factory() as uow:
        await uow.refresh_token_repository.add(expired)

    with pytest.raises(TokenExpiredException):
        await services.tokens.refresh_token(expired.token_value)

    stored = await _token(services, expired.token_value)
    assert stored.revoked_at is None
    assert len(await _family(services, expired.family)) == 1


async def test_disabled_owner_cannot_refresh(services, make_user):
    user = await make_user(services)
    login = await _login(services)
    async with services.uow_factory() as uow:
        entity = await uow.user_repository.get_by_id(user.id)
        entity.deactivate()
        await uow.user_repository.update(entity)

    with pytest.raises(AccountDisabledException):
        await services.tokens.refresh_token(login.refresh_token)
    assert (await _token(services, login.refresh_token)).revoked_at is None


async def test_concurrent_refresh_single_winner(services, make_user):
    svc = services
    await make_user(svc)
    login = await _login(svc)

    results = await asyncio.gather(
        svc.tokens.refresh_token(login.refresh_token, "10.0.0.1"),
        svc.tokens.refresh_token(login.refresh_token, "10.0.0.2"),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, tuple)]
    losers = [r for r in results if isinstance(r, TokenReuseDetectedException)]
    assert len(winners) == 1
    assert len(losers) == 1

    family = await _family(svc, winners[0][1].family)
    assert len(family) == 2
    assert all(t.revoked_at is not None for t in family)


async def test_cancelled_refresh_leaves_predecessor_active(memory_services, memory_store, make_user):
    svc = memory_services
    await make_user(svc)
    login = await _login(svc)

    memory_store.add_started.clear()
    memory_store.add_gate = asyncio.Event()
    task = asyncio.create_task(svc.tokens.refresh_token(login.refresh_token))
    await memory_store.add_started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    memory_store.add_gate = None

    assert await svc.tokens.validate_refresh_token(login.refresh_token) is not None
    _, successor = await svc.tokens.refresh_token(login.refresh_token)
    assert successor.rotation_count == 1


async def test_persistence_failure_rolls_back_claim(sqlite_services, make_user, monkeypatch):
    svc = sqlite_services
    await make_user(svc)
    login = await _login(svc)

    async def _broken_add(self, token):
        raise OperationalError("INSERT INTO refresh_tokens", {}, Exception("disk I/O error"))

    monkeypatch.setattr(SQLAlchemyRefreshTokenRepository, "add", _broken_add)

    with pytest.raises(PersistenceException):
        await svc.tokens.refresh_token(login.refresh_token)

    result = await svc.auth.refresh(login.refresh_token)
    assert not result.success
    assert result.error_type == "PersistenceError"

    monkeypatch.undo()
    assert await svc.tokens.validate_refresh_token(login.refresh_token) is not None
    assert len(await _family(svc, (await _token(svc, login.refresh_token)).family)) == 1


async def test_revoke_token_is_idempotent(services, make_user):
    await make_user(services)
    login = await _login(services)
    token = await _token(services, login.refresh_token)

    assert await services.tokens.revoke_token(token.id, "manual") is True
    assert await services.tokens.revoke_token(token.id, "manual") is False
    assert await services.tokens.revoke_token("missing-id") is False


async def test_revoke_family_counts_newly_revoked(services, make_user):
    await make_user(services)
    login = await _login(services)
    _, t1 = await services.tokens.refresh_token(login.refresh_token)

    assert await services.tokens.revoke_token_family(t1.family) == 1
    assert await services.tokens.revoke_token_family(t1.family) == 0


async def test_validate_is_side_effect_free(services, make_user):
    await make_user(services)
    login = await _login(services)
    _, t1 = await services.tokens.refresh_token(login.refresh_token)

    assert await services.tokens.validate_refresh_token(login.refresh_token) is None
    assert await services.tokens.validate_refresh_token("nope") is None
    # 对已轮转令牌的校验不会触发重用处理
    valid = await services.tokens.validate_refresh_token(t1.token_value)
    assert valid is not None and valid.id == t1.id


async def test_active_sessions_one_per_family(services, make_user):
    user = await make_user(services)
    first = await _login(services)
    await _login(services)
    _, rotated = await services.tokens.refresh_token(first.refresh_token)

    sessions = await services.tokens.get_active_sessions(user.id)
    assert len(sessions) == 2
    by_family = {s.family: s for s in sessions}
    assert by_family[rotated.family].rotation_count == 1

    assert await services.tokens.revoke_all_user_tokens(user.id) == 2
    assert await services.tokens.get_active_sessions(user.id) == []
