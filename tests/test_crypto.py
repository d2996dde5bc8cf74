"""Tests for crypto.py: sealing values for a recipient key."""

import base64

import pytest

from unit_storage import crypto
from unit_storage.exceptions import ConfigurationError, DecryptionError
from unit_storage.models.entry import Err, ErrorKind, Ok


class TestEncryption:

    def test_round_trip_with_key_objects(self, key_pair):
        token = crypto.encrypt(key_pair.public_key, {"a": [1, 2]})
        assert isinstance(token, str)
        assert crypto.decrypt(key_pair.private_key, token) == {"a": [1, 2]}

    def test_round_trip_with_exported_keys(self, key_pair):
        private_b64, public_b64 = key_pair.export()
        token = crypto.encrypt(public_b64, "hello")
        assert crypto.decrypt(private_b64, token) == "hello"

    def test_tokens_are_randomised(self, key_pair):
        assert crypto.encrypt(key_pair.public_key, 1) != crypto.encrypt(
            key_pair.public_key, 1
        )

    def test_wrong_key_fails(self, key_pair):
        token = crypto.encrypt(key_pair.public_key, "x")
        other = crypto.generate_key_pair()
        with pytest.raises(DecryptionError):
            crypto.decrypt(other.private_key, token)

    def test_tampered_token_fails(self, key_pair):
        raw = bytearray(base64.b64decode(crypto.encrypt(key_pair.public_key, "x")))
        raw[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            crypto.decrypt(key_pair.private_key, base64.b64encode(bytes(raw)).decode())

    @pytest.mark.parametrize("token", ["not base64!", "", 42, base64.b64encode(b"\x01abc").decode()])
    def test_malformed_token_fails(self, key_pair, token):
        with pytest.raises(DecryptionError):
            crypto.decrypt(key_pair.private_key, token)

    def test_try_decrypt_is_tagged(self, key_pair):
        token = crypto.encrypt(key_pair.public_key, 5)
        assert crypto.try_decrypt(key_pair.private_key, token) == Ok(5)
        result = crypto.try_decrypt(key_pair.private_key, "plain text")
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.DECRYPTION


class TestKeyLoading:

    def test_public_key_derived_from_private(self, key_pair):
        loaded = crypto.load_public_key(key_pair.private_key)
        assert crypto.export_public_key(loaded) == crypto.export_public_key(
            key_pair.public_key
        )

    @pytest.mark.parametrize("bad", ["@@@", b"short", 12])
    def test_invalid_keys_raise_configuration_error(self, bad):
        with pytest.raises(ConfigurationError):
            crypto.load_public_key(bad)
        with pytest.raises(ConfigurationError):
            crypto.load_private_key(bad)

    def test_invalid_private_key_on_decrypt(self, key_pair):
        token = crypto.encrypt(key_pair.public_key, 1)
        with pytest.raises(DecryptionError):
            crypto.decrypt("@@@", token)
