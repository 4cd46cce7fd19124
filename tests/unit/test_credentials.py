import pytest

from storefront.credentials import (
    CredentialVerifier,
    hash_password,
    normalize_email,
    validate_password_strength,
    verify_password,
)
from storefront.errors import ValidationFailed

TEST_PASSWORD = "Sup3r$ecret!"


def test_normalize_email():
    assert normalize_email("  Shopper@Example.COM ") == "shopper@example.com"
    assert normalize_email("") == ""


def test_hash_and_verify():
    digest = hash_password(TEST_PASSWORD)
    assert digest != TEST_PASSWORD
    assert digest.startswith("$pbkdf2-sha256$")
    assert verify_password(TEST_PASSWORD, digest)
    assert not verify_password("wrong", digest)


def test_unreadable_hash_fails_closed():
    assert verify_password(TEST_PASSWORD, "not-a-hash") is False


@pytest.mark.parametrize(
    "password,fragment",
    [
        ("Sh0rt!", "at least 8"),
        ("alllower1!", "uppercase"),
        ("ALLUPPER1!", "lowercase"),
        ("NoDigits!!", "number"),
        ("NoSpecial1", "special"),
    ],
)
def test_password_policy(password, fragment):
    with pytest.raises(ValidationFailed) as exc:
        validate_password_strength(password)
    assert fragment in str(exc.value)


def test_password_policy_accepts_strong():
    validate_password_strength(TEST_PASSWORD)


async def test_verifier_accepts_valid_pair(make_user):
    user = await make_user(email="buyer@example.com")
    found = await CredentialVerifier().verify(" BUYER@example.com", TEST_PASSWORD)
    assert found is not None and found.id == user.id


async def test_verifier_rejects_unknown_email_and_wrong_password_alike(make_user):
    await make_user(email="buyer@example.com")
    verifier = CredentialVerifier()
    assert await verifier.verify("nobody@example.com", TEST_PASSWORD) is None
    assert await verifier.verify("buyer@example.com", "Wr0ng!pass") is None
