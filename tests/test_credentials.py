"""Tests for Authorization header parsing."""

import base64

import pytest

from gatehouse.service.credentials import (
    BasicCredential,
    BearerCredential,
    extract_credential,
)
from helpers import basic_header


class TestExtractCredential:
    def test_basic_header_yields_user_and_password(self):
        credential = extract_credential(basic_header("alice", "Secret123"))
        assert credential == BasicCredential(user_id="alice", password="Secret123")

    def test_scheme_is_case_insensitive(self):
        header = basic_header("alice", "pw").replace("Basic", "BASIC")
        assert isinstance(extract_credential(header), BasicCredential)

    def test_password_may_contain_colons(self):
        credential = extract_credential(basic_header("alice", "a:b:c"))
        assert credential.user_id == "alice"
        assert credential.password == "a:b:c"

    def test_empty_password_is_kept(self):
        credential = extract_credential(basic_header("alice", ""))
        assert credential == BasicCredential(user_id="alice", password="")

    def test_bearer_header_yields_token(self):
        assert extract_credential("Bearer abc.def") == BearerCredential(token="abc.def")

    @pytest.mark.parametrize(
        "header",
        [
            None,
            "",
            "Basic",
            "Basic  double-space",
            "Basic a b",
            "Digest abc",
            "Basic not-base64!!",
            "Bearer ",
        ],
    )
    def test_malformed_headers_are_anonymous(self, header):
        assert extract_credential(header) is None

    def test_payload_without_colon_is_anonymous(self):
        token = base64.b64encode(b"alice").decode("ascii")
        assert extract_credential(f"Basic {token}") is None

    def test_empty_user_id_is_anonymous(self):
        assert extract_credential(basic_header("", "pw")) is None

    def test_non_utf8_payload_is_anonymous(self):
        token = base64.b64encode(b"\xff\xfe:\xff").decode("ascii")
        assert extract_credential(f"Basic {token}") is None

    def test_repr_masks_secrets(self):
        assert "Secret123" not in repr(BasicCredential("alice", "Secret123"))
        assert "zq9x" not in repr(BearerCredential("zq9x"))
