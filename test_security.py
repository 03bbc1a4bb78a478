import jwt
import pytest

from security import TokenSigner, hash_password, verify_password
from utils.errors import AuthenticationError, InvalidTokenError


@pytest.fixture
def signer(settings):
    """
    Fixture providing a token signer using the test secret.

    Args:
        settings: Fixture providing settings

    Returns:
        TokenSigner: Signer with a 7 day lifetime
    """
    return TokenSigner(settings)


class TestPasswords:
    """
    Tests for password hashing.
    """

    def test_hash_verifies_only_the_original_password(self):
        """
        Test that a stored hash accepts its password and nothing else.
        """
        stored = hash_password("secret123")

        assert verify_password("secret123", stored) is True
        assert verify_password("secret124", stored) is False

    def test_hashes_are_salted(self):
        """
        Test that hashing the same password twice gives different hashes.
        """
        assert hash_password("secret123") != hash_password("secret123")

    @pytest.mark.parametrize(
        "stored",
        ["", "plain-text", "1$zz$00"],
        ids=["empty", "no-separators", "bad-hex"]
    )
    def test_malformed_hash_never_verifies(self, stored):
        """
        Test that malformed stored hashes are rejected instead of raising.

        Args:
            stored: A malformed hash string
        """
        assert verify_password("secret123", stored) is False


class TestAccessTokens:
    """
    Tests for session tokens.
    """

    def test_round_trip(self, signer):
        """
        Test that an issued token decodes to its id and email.

        Args:
            signer: Fixture providing the token signer
        """
        payload = signer.verify_access_token(signer.issue_access_token("user-1", "jo@example.com"))

        assert payload["id"] == "user-1"
        assert payload["email"] == "jo@example.com"

    def test_expired_token_is_rejected(self, settings):
        """
        Test that a token past its lifetime raises AuthenticationError.

        Args:
            settings: Fixture providing settings
        """
        expired = TokenSigner(settings.model_copy(update={"token_ttl_days": -1}))
        token = expired.issue_access_token("user-1", "jo@example.com")

        with pytest.raises(AuthenticationError, match="expired"):
            TokenSigner(settings).verify_access_token(token)

    def test_token_signed_with_other_secret_is_rejected(self, signer):
        """
        Test that a forged token raises AuthenticationError.

        Args:
            signer: Fixture providing the token signer
        """
        forged = jwt.encode({"id": "user-1", "email": "jo@example.com"}, "other-secret", algorithm="HS256")

        with pytest.raises(AuthenticationError):
            signer.verify_access_token(forged)


class TestInvitationTokens:
    """
    Tests for invitation tokens.
    """

    def test_tokens_are_unique(self, signer):
        """
        Test that two tokens for the same invitee differ.

        Args:
            signer: Fixture providing the token signer
        """
        first = signer.issue_invitation_token("guest@example.com", "project-1")
        second = signer.issue_invitation_token("guest@example.com", "project-1")

        assert first != second
        assert signer.verify_invitation_token(first)["projectId"] == "project-1"

    def test_payload_without_project_is_rejected(self, signer, settings):
        """
        Test that a validly signed token missing projectId raises InvalidTokenError.

        Args:
            signer: Fixture providing the token signer
            settings: Fixture providing settings
        """
        token = jwt.encode({"email": "guest@example.com"}, settings.jwt_secret, algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            signer.verify_invitation_token(token)

    def test_access_token_is_not_an_invitation(self, signer):
        """
        Test that a session token cannot be used as an invitation token.

        Args:
            signer: Fixture providing the token signer
        """
        with pytest.raises(InvalidTokenError):
            signer.verify_invitation_token(signer.issue_access_token("user-1", "jo@example.com"))
