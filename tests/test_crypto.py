import base64
import string

import pytest

from app.core import crypto
from app.core.crypto import DecryptionError


class TestPasswordEncryption:
    def test_ciphertext_layout(self):
        blob = crypto.encrypt("correct-horse-battery")
        iv, tag, data = blob.split(":")
        assert len(base64.b64decode(iv)) == 16
        assert len(base64.b64decode(tag)) == 16
        assert len(base64.b64decode(data)) == len("correct-horse-battery")
        assert "correct-horse-battery" not in blob
        assert crypto.is_encrypted(blob)

    def test_decrypts_what_it_encrypts(self):
        assert crypto.decrypt(crypto.encrypt("pässwörd with spaces")) == "pässwörd with spaces"

    def test_random_iv_per_call(self):
        assert crypto.encrypt("same") != crypto.encrypt("same")

    def test_tampered_ciphertext_is_rejected(self):
        iv, tag, data = crypto.encrypt("secret-value").split(":")
        raw = bytearray(base64.b64decode(data))
        raw[0] ^= 0x01
        tampered = ":".join([iv, tag, base64.b64encode(bytes(raw)).decode()])
        with pytest.raises(DecryptionError):
            crypto.decrypt(tampered)

    @pytest.mark.parametrize("blob", ["plaintext", "a:b", "not:base64!:data", "::"])
    def test_malformed_input_is_rejected(self, blob):
        with pytest.raises(DecryptionError):
            crypto.decrypt(blob)

    def test_legacy_plaintext_is_not_flagged_encrypted(self):
        assert not crypto.is_encrypted("hunter2hunter2")


def test_generated_password_meets_complexity_rules():
    password = crypto.generate_random_password()
    assert len(password) >= 32
    assert any(c in string.ascii_uppercase for c in password)
    assert any(c in string.ascii_lowercase for c in password)
    assert any(c in string.digits for c in password)
    assert any(c in "!@#$%^&*" for c in password)
    assert crypto.generate_random_password() != password
