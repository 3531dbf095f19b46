"""
ElGamal encryption over a fixed safe-prime group.

This module provides key generation, encryption, re-encryption and decryption
of integers below P. Messages are integers produced by the codec; keys and
ciphertext components are plain Python ints and cross the boundary as
base-10 strings.
"""
import logging
import secrets
from dataclasses import dataclass

from secret_santa.errors import InvalidPublicKey, WireFormatError

logger = logging.getLogger(__name__)

# RFC 2409 Oakley Group 2: 1024-bit safe prime, P = 2q + 1 with q prime
P = int(
    'FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD1'
    '29024E088A67CC74020BBEA63B139B22514A08798E3404DD'
    'EF9519B3CD3A431B302B0A6DF25F14374FE1356D6D51C245'
    'E485B576625E7EC6F44C42E9A637ED6B0BFF5CB6F406B7ED'
    'EE386BFB5A899FA5AE9F24117C4B1FE649286651ECE65381'
    'FFFFFFFFFFFFFFFF',
    16,
)
G = 2
Q = (P - 1) // 2

_system_rng = secrets.SystemRandom()


def mod_pow(base, exponent, modulus=P):
    """Fast modular exponentiation; the result is always in [0, modulus)."""
    return pow(base, exponent, modulus)


def mod_inv(value, modulus=P):
    """
    Modular inverse of value.

    Raises:
        ValueError: if value has no inverse modulo modulus (e.g. 0)
    """
    return pow(value, -1, modulus)


def random_exponent(rng=None):
    """Draw an exponent uniformly from [2, P-2]."""
    rng = rng or _system_rng
    return rng.randint(2, P - 2)


def parse_decimal(value):
    """
    Parse a canonical non-negative base-10 string into an int.

    Accepts ints unchanged. Rejects signs, whitespace, and leading zeros.

    Raises:
        WireFormatError: if the value is not canonical
    """
    if isinstance(value, bool):
        raise WireFormatError(f"Not a decimal integer: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise WireFormatError(f"Negative value: {value}")
        return value
    if not isinstance(value, str) or not value.isascii() or not value.isdigit():
        raise WireFormatError(f"Not a decimal integer: {value!r}")
    if len(value) > 1 and value[0] == '0':
        raise WireFormatError(f"Leading zeros in decimal integer: {value!r}")
    return int(value)


def format_decimal(value):
    return str(value)


def validate_public_key(public_key):
    """
    Check that a member public key is a usable element of the key group.

    Keys must lie in [2, P-2] and be quadratic residues, which every key from
    generate_keypair() is.

    Returns:
        int: the key, unchanged

    Raises:
        InvalidPublicKey: if the key is out of range or not a residue
    """
    if isinstance(public_key, bool) or not isinstance(public_key, int):
        raise InvalidPublicKey(f"expected an int, got {type(public_key).__name__}")
    if not 2 <= public_key <= P - 2:
        raise InvalidPublicKey("outside [2, P-2]")
    if not ElGamalCrypto.is_quadratic_residue(public_key):
        raise InvalidPublicKey("not a quadratic residue")
    return public_key


@dataclass(frozen=True)
class KeyPair:
    public_key: int
    private_key: int

    def __repr__(self):
        # keep private keys out of logs and tracebacks
        return f"KeyPair(public_key={str(self.public_key)[:12]}..., private_key=<hidden>)"


@dataclass(frozen=True)
class Ciphertext:
    """Output of one encryption: c1 = g^y, c2 = m * pk^y (mod P)."""
    c1: int
    c2: int

    def to_dict(self):
        """
        Convert the ciphertext to a dictionary for JSON serialization.

        Returns:
            dict: {'c1': str, 'c2': str} with decimal strings
        """
        return {
            'c1': format_decimal(self.c1),
            'c2': format_decimal(self.c2),
        }

    @classmethod
    def from_dict(cls, data):
        """
        Create a ciphertext from a dictionary.

        Raises:
            WireFormatError: if a component is missing, not canonical, or out of range
        """
        try:
            c1 = parse_decimal(data['c1'])
            c2 = parse_decimal(data['c2'])
        except KeyError as e:
            raise WireFormatError(f"Missing ciphertext component {e}") from e
        if not 0 < c1 < P:
            raise WireFormatError("Ciphertext component c1 outside [1, P)")
        if not c2 < P:
            raise WireFormatError("Ciphertext component c2 outside [0, P)")
        return cls(c1, c2)


class ElGamalCrypto:
    """
    ElGamal over the multiplicative group modulo the safe prime P.

    Private keys are always even so that public keys are quadratic residues.
    """

    @staticmethod
    def generate_keypair(rng=None):
        """
        Generate a key pair.

        Args:
            rng: Random source with randint(); defaults to the system CSPRNG

        Returns:
            KeyPair: private_key = 2r for r in [2, P-2], public_key = g^private_key mod P
        """
        private_key = 2 * random_exponent(rng)
        public_key = mod_pow(G, private_key)
        return KeyPair(public_key=public_key, private_key=private_key)

    @staticmethod
    def encrypt(public_key, message, rng=None):
        """
        Encrypt an integer message with a recipient's public key.

        The caller guarantees 0 <= message < P; the codec enforces this.

        Args:
            public_key (int): Recipient public key
            message (int): Plaintext integer
            rng: Random source for the ephemeral exponent

        Returns:
            Ciphertext: fresh ciphertext, a new ephemeral exponent per call
        """
        y = random_exponent(rng)
        shared = mod_pow(public_key, y)
        return Ciphertext(c1=mod_pow(G, y), c2=(message * shared) % P)

    @staticmethod
    def reencrypt(public_key, ciphertext, rng=None):
        """
        Re-randomize a ciphertext under the same public key.

        The result decrypts to the same plaintext but shares no component
        with the input.
        """
        r = random_exponent(rng)
        return Ciphertext(
            c1=(ciphertext.c1 * mod_pow(G, r)) % P,
            c2=(ciphertext.c2 * mod_pow(public_key, r)) % P,
        )

    @staticmethod
    def decrypt(private_key, ciphertext):
        """
        Decrypt a ciphertext with a private key.

        A wrong key yields a meaningless integer rather than an error; the
        codec's structural checks are what detect it.

        Returns:
            int: c2 * (c1^private_key)^-1 mod P
        """
        shared = mod_pow(ciphertext.c1, private_key)
        return (ciphertext.c2 * mod_inv(shared)) % P

    @staticmethod
    def is_quadratic_residue(value):
        """Euler's criterion: value^((P-1)/2) == 1 mod P."""
        return mod_pow(value % P, Q) == 1

    @staticmethod
    def encrypt_for_multiple(public_keys, message, rng=None):
        """
        Encrypt the same message for several recipients.

        Args:
            public_keys (dict): recipient id -> public key
            message (int): Plaintext integer

        Returns:
            dict: recipient id -> Ciphertext
        """
        result = {}
        for recipient_id, public_key in public_keys.items():
            result[recipient_id] = ElGamalCrypto.encrypt(public_key, message, rng)
        logger.debug("Encrypted one message for %d recipients", len(result))
        return result
