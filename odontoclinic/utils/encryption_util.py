# /odontoclinic/utils/encryption_util.py
"""
Deterministic encryption for CPF values (LGPD).

The same CPF always produces the same ciphertext, which is what lets the
``patients.cpf`` column keep its UNIQUE constraint and be searched by equality.
The price is that repeated values are visible as repeated ciphertext; this
scheme must not be reused for any other field.

Stored values may still be legacy plaintext (11 digits) until the
``flask encrypt-cpfs`` migration has run, so every read path goes through
:meth:`CPFEncryptor.decrypt`, which passes those through untouched.
"""
import base64
import binascii
import hashlib
import logging
import re

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
IV_CONTEXT = b'iv-cpf-lgpd'
CPF_FIELDS = ('cpf', 'guardian_cpf')

_CPF_RE = re.compile(r'^[0-9]{11}$')
_HEX_RE = re.compile(r'^[0-9a-fA-F]+$')
_NON_DIGIT_RE = re.compile(r'[^0-9]')


def derive_key(secret: str) -> bytes:
    """Turns the configured secret into a 32-byte AES key.

    A hex string of at least 64 characters is used directly; anything else is
    hashed with SHA-256.
    """
    if len(secret) >= KEY_LENGTH * 2 and _HEX_RE.match(secret):
        return bytes.fromhex(secret[:KEY_LENGTH * 2])
    return hashlib.sha256(secret.encode('utf-8')).digest()


def derive_iv(key: bytes) -> bytes:
    return hashlib.sha256(key + IV_CONTEXT).digest()[:IV_LENGTH]


def only_digits(value: str) -> str:
    return _NON_DIGIT_RE.sub('', value)


def is_plain_cpf(value) -> bool:
    return isinstance(value, str) and bool(_CPF_RE.match(value.strip()))


class CPFEncryptor:
    """
    AES-256-CBC with a fixed, key-derived IV.
    Initialize with a secret directly or through the Flask app config.
    """
    def __init__(self, app=None, secret=None):
        self.key = None
        self.iv = None
        if secret is not None:
            self.configure(secret)
        elif app:
            self.init_app(app)

    def init_app(self, app):
        """Derives key and IV from ``CPF_ENCRYPTION_KEY`` in the app config."""
        secret = app.config.get('CPF_ENCRYPTION_KEY')
        if not secret:
            raise ValueError("CPF_ENCRYPTION_KEY not set in the Flask application config.")
        self.configure(secret)

    def configure(self, secret: str) -> None:
        self.key = derive_key(secret)
        self.iv = derive_iv(self.key)

    def _cipher(self) -> Cipher:
        if self.key is None:
            raise RuntimeError("CPFEncryptor has not been initialized with a secret.")
        return Cipher(algorithms.AES(self.key), modes.CBC(self.iv))

    def encrypt(self, plaintext):
        """Encrypts an 11-digit CPF. Anything else is returned unchanged."""
        if not plaintext or not isinstance(plaintext, str):
            return plaintext
        digits = only_digits(plaintext)
        if len(digits) != 11:
            return plaintext

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(digits.encode('utf-8')) + padder.finalize()
        encryptor = self._cipher().encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(ciphertext).decode('ascii')

    def decrypt(self, stored):
        """
        Returns the 11-digit CPF for a stored value.

        Legacy plaintext is returned as is. Values that cannot be decoded or
        decrypted into a CPF are returned verbatim instead of raising.
        """
        if not stored or not isinstance(stored, str):
            return stored
        value = stored.strip()
        if _CPF_RE.match(value):
            return stored

        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            return self._fallback(stored, 'not base64')
        if not raw or len(raw) % IV_LENGTH:
            return self._fallback(stored, 'bad block length')

        decryptor = self._cipher().decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
            plaintext = data.decode('utf-8')
        except (ValueError, UnicodeDecodeError):
            return self._fallback(stored, 'bad padding or key')

        # A wrong key can still unpad cleanly by chance
        if not _CPF_RE.match(plaintext):
            return self._fallback(stored, 'not a CPF')
        return plaintext

    def _fallback(self, stored, reason):
        logger.warning("CPF decryption fell back to the stored value (%s)", reason)
        return stored

    def is_encrypted(self, stored) -> bool:
        """False for legacy plaintext (11 digits), empty or non-string values."""
        if not stored or not isinstance(stored, str):
            return False
        return not is_plain_cpf(stored)

    def decrypt_record(self, record, fields=CPF_FIELDS):
        """Returns a shallow copy of ``record`` with its CPF fields decrypted."""
        if not record:
            return record
        out = dict(record)
        for field in fields:
            if out.get(field) is not None:
                out[field] = self.decrypt(out[field])
        return out

    def decrypt_records(self, records, fields=CPF_FIELDS):
        if not records:
            return []
        return [self.decrypt_record(record, fields) for record in records]


# Create a single, uninitialized instance to be imported by other modules.
encryptor = CPFEncryptor()
