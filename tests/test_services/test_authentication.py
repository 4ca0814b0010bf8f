"""
Tests for feedserver.services.authentication
==============================================
"""

from feedserver.domain.models import ApiKey, AuthenticationOptions
from feedserver.services.authentication import is_push_authentication_required, verify_api_key


class TestVerifyApiKey:
    def test_open_feed_accepts_anything(self) -> None:
        options = AuthenticationOptions()
        assert not is_push_authentication_required(options)
        assert verify_api_key(options, None)
        assert verify_api_key(options, "whatever")

    def test_configured_keys(self) -> None:
        options = AuthenticationOptions(api_keys=[ApiKey(key="first"), ApiKey(key="second")])
        assert is_push_authentication_required(options)
        assert verify_api_key(options, "second")
        assert not verify_api_key(options, "third")
        assert not verify_api_key(options, "")
        assert not verify_api_key(options, None)
