"""
Password-sealed storage for a member's private key and payload.

Values are sealed with AES-256-GCM under a key derived from the member's
password with PBKDF2-HMAC-SHA256. The sealed form is
base64(salt || nonce || ciphertext), safe to hand to an untrusted store.
"""
import base64
import json
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from secret_santa import config
from secret_santa.crypto.codec import Payload
from secret_santa.crypto.elgamal import format_decimal, parse_decimal
from secret_santa.errors import InvalidPassword, WireFormatError

SALT_SIZE = 16
NONCE_SIZE = 12


def derive_key(password, salt, iterations=None):
    """
    Derive a 32-byte AES key from a password.

    Args:
        password (str): Member password
        salt (bytes): Random per-value salt
        iterations (int, optional): PBKDF2 rounds; defaults to config.KDF_ITERATIONS
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations or config.KDF_ITERATIONS,
    )
    return kdf.derive(password.encode('utf-8'))


def seal(data, password, iterations=None):
    """
    Encrypt a string with a password.

    Returns:
        str: base64 of salt || nonce || AES-GCM ciphertext
    """
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = derive_key(password, salt, iterations)
    encrypted = AESGCM(key).encrypt(nonce, data.encode('utf-8'), None)
    return base64.b64encode(salt + nonce + encrypted).decode('ascii')


def unseal(sealed, password, iterations=None):
    """
    Decrypt a value produced by seal().

    Raises:
        InvalidPassword: if the password is wrong, the value was tampered with,
            or there is no sealed value
    """
    if not isinstance(sealed, str):
        raise InvalidPassword()
    try:
        combined = base64.b64decode(sealed, validate=True)
    except ValueError as e:
        raise InvalidPassword() from e
    if len(combined) < SALT_SIZE + NONCE_SIZE:
        raise InvalidPassword()

    salt = combined[:SALT_SIZE]
    nonce = combined[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
    key = derive_key(password, salt, iterations)
    try:
        plain = AESGCM(key).decrypt(nonce, combined[SALT_SIZE + NONCE_SIZE:], None)
    except InvalidTag as e:
        raise InvalidPassword() from e
    return plain.decode('utf-8')


def seal_private_key(private_key, password, iterations=None):
    return seal(format_decimal(private_key), password, iterations)


def open_private_key(sealed, password, iterations=None):
    return parse_decimal(unseal(sealed, password, iterations))


def seal_payload(payload, password, iterations=None):
    """Seal a (name, address, note) payload as one JSON document."""
    document = json.dumps(dict(zip(Payload._fields, payload)), ensure_ascii=False)
    return seal(document, password, iterations)


def open_payload(sealed, password, iterations=None):
    """
    Open a payload sealed with seal_payload().

    Returns:
        Payload: the member's own name, address and note
    """
    data = json.loads(unseal(sealed, password, iterations))
    try:
        return Payload(*(data[field] for field in Payload._fields))
    except KeyError as e:
        raise WireFormatError(f"Sealed payload missing field {e}") from e
