import pytest

from domain.common.exceptions import DomainValidationException
from domain.user.service import PasswordHasher


def test_hash_is_self_describing_argon2id_and_salted(password_hasher):
    first = password_hasher.hash_password("Secret123")
    second = password_hasher.hash_password("Secret123")

    assert first.startswith("$argon2id$")
    assert first != second
    assert password_hasher.verify_password("Secret123", first)
    assert password_hasher.verify_password("Secret123", second)


def test_verify_rejects_wrong_password(password_hasher):
    hashed = password_hasher.hash_password("Secret123")
    assert password_hasher.verify_password("Secret124", hashed) is False


@pytest.mark.parametrize("stored", ["", "not-a-hash", "$argon2id$v=19$broken"])
def test_verify_malformed_hash_returns_false(password_hasher, stored):
    assert password_hasher.verify_password("Secret123", stored) is False


def test_verify_empty_password_returns_false(password_hasher):
    hashed = password_hasher.hash_password("Secret123")
    assert password_hasher.verify_password("", hashed) is False


def test_hash_empty_password_raises(password_hasher):
    with pytest.raises(DomainValidationException):
        password_hasher.hash_password("")


def test_needs_rehash_when_cost_changes(password_hasher):
    hashed = password_hasher.hash_password("Secret123")
    stronger = PasswordHasher(time_cost=2, memory_cost=1024, parallelism=1)

    assert password_hasher.needs_rehash(hashed) is False
    assert stronger.needs_rehash(hashed) is True
    # 旧参数的哈希仍可校验
    assert stronger.verify_password("Secret123", hashed)


def test_burn_verification_does_not_raise(password_hasher):
    password_hasher.burn_verification("anything")
    password_hasher.burn_verification("")


@pytest.mark.parametrize("weak", ["Short1", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
def test_password_strength_rules(weak):
    with pytest.raises(DomainValidationException):
        PasswordHasher.validate_password_strength(weak)


def test_password_strength_accepts_valid():
    PasswordHasher.validate_password_strength("Secret123")
