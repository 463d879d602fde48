from __future__ import annotations

import unittest

from cryptography.exceptions import InvalidTag
from cryptography.fernet import Fernet

from store_fixtures import make_cipher
from uniform_portal.config import Settings
from uniform_portal.errors import CipherMismatchError
from uniform_portal.services.field_cipher import (
    CURRENT_SCHEME,
    LEGACY_FERNET_SCHEME,
    Encrypted,
    FernetCodec,
    FieldCipher,
    Plaintext,
)


class FieldCipherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cipher = make_cipher()

    def test_round_trip(self) -> None:
        for value in ['asha.rao@example.com', '', 'ünïcødé@exämple.in', 'x' * 500]:
            self.assertEqual(self.cipher.decrypt(self.cipher.encrypt(value)), value)

    def test_encrypt_uses_fresh_nonce_per_call(self) -> None:
        first = self.cipher.encrypt('same@example.com')
        second = self.cipher.encrypt('same@example.com')
        self.assertEqual(first.scheme, CURRENT_SCHEME)
        self.assertEqual(first.scheme, second.scheme)
        self.assertNotEqual(first.payload, second.payload)

    def test_current_scheme_is_not_flagged(self) -> None:
        result = self.cipher.decrypt_with_status(self.cipher.encrypt('a@example.com'))
        self.assertEqual(result.plaintext, 'a@example.com')
        self.assertFalse(result.needs_reencryption)

    def test_legacy_plaintext_is_returned_and_flagged(self) -> None:
        result = self.cipher.decrypt_with_status(Plaintext('Legacy.User@example.com'))
        self.assertEqual(result.plaintext, 'Legacy.User@example.com')
        self.assertTrue(result.needs_reencryption)
        self.assertEqual(self.cipher.decrypt(Plaintext('Legacy.User@example.com')), 'Legacy.User@example.com')

    def test_unknown_scheme_raises_mismatch(self) -> None:
        with self.assertRaises(CipherMismatchError) as ctx:
            self.cipher.decrypt(Encrypted(scheme='rot13-v9', payload='abc'))
        self.assertEqual(ctx.exception.scheme, 'rot13-v9')

    def test_fernet_scheme_decrypts_and_is_flagged(self) -> None:
        key = Fernet.generate_key()
        cipher = make_cipher(**{LEGACY_FERNET_SCHEME: FernetCodec(key)})
        payload = Fernet(key).encrypt(b'old@example.com').decode('ascii')

        result = cipher.decrypt_with_status(Encrypted(scheme=LEGACY_FERNET_SCHEME, payload=payload))

        self.assertEqual(result.plaintext, 'old@example.com')
        self.assertTrue(result.needs_reencryption)

    def test_wrong_key_fails_authentication(self) -> None:
        envelope = self.cipher.encrypt('a@example.com')
        other = make_cipher()
        with self.assertRaises(InvalidTag):
            other.decrypt(envelope)

    def test_lookup_token_is_deterministic_and_keyed(self) -> None:
        self.assertEqual(self.cipher.lookup_token('a@example.com'), self.cipher.lookup_token('a@example.com'))
        self.assertNotEqual(self.cipher.lookup_token('a@example.com'), self.cipher.lookup_token('b@example.com'))
        other_key = make_cipher(token_key=b'another-key')
        self.assertNotEqual(self.cipher.lookup_token('a@example.com'), other_key.lookup_token('a@example.com'))
        self.assertEqual(len(self.cipher.lookup_token('a@example.com')), 64)

    def test_from_settings_registers_fernet_only_when_configured(self) -> None:
        plain = FieldCipher.from_settings(Settings(_env_file=None))
        self.assertEqual(plain.schemes, frozenset({CURRENT_SCHEME}))

        with_legacy = FieldCipher.from_settings(Settings(_env_file=None, legacy_fernet_key=Fernet.generate_key().decode()))
        self.assertEqual(with_legacy.schemes, frozenset({CURRENT_SCHEME, LEGACY_FERNET_SCHEME}))
        self.assertEqual(with_legacy.decrypt(with_legacy.encrypt('x@example.com')), 'x@example.com')

    def test_current_scheme_must_have_codec(self) -> None:
        with self.assertRaises(ValueError):
            FieldCipher(codecs={}, token_key=b'k')


if __name__ == '__main__':
    unittest.main()
