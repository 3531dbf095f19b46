"""
Member models.

Member is what the coordinator stores: public key, sealed secrets and the
exclusion flag. Participant is the member's own side, holding the plaintext
payload and the private key after unlocking them with the password.
"""
import logging

from secret_santa.crypto import codec, vault
from secret_santa.crypto.elgamal import ElGamalCrypto, KeyPair, format_decimal, parse_decimal, validate_public_key
from secret_santa.models.ledger import encrypt_payload_for

logger = logging.getLogger(__name__)


class Member:
    """
    Represents a member as seen by the coordinator.
    """

    def __init__(self, id, public_key, sealed_private_key=None, sealed_payload=None):
        """
        Initialize a new member.

        Args:
            id (str): The member's ID
            public_key (int): ElGamal public key
            sealed_private_key (str, optional): Private key sealed with the member's password
            sealed_payload (str, optional): Payload sealed with the member's password
        """
        self.id = id
        self.public_key = public_key
        self.sealed_private_key = sealed_private_key
        self.sealed_payload = sealed_payload
        self.excluded = False

    @property
    def active(self):
        return not self.excluded

    def __repr__(self):
        return f"Member({self.id!r}{', excluded' if self.excluded else ''})"

    def to_dict(self, include_secrets=False):
        """
        Convert the member to a dictionary for JSON serialization.

        Args:
            include_secrets (bool): Add the sealed values, for the member themselves only

        Returns:
            dict: Dictionary representation of the member
        """
        data = {
            'id': self.id,
            'publicKey': format_decimal(self.public_key),
            'excluded': self.excluded,
        }
        if include_secrets:
            data['sealedPrivateKey'] = self.sealed_private_key
            data['sealedPayload'] = self.sealed_payload
        return data

    @classmethod
    def from_dict(cls, data):
        """
        Create a member from a dictionary.

        Args:
            data (dict): Dictionary representation of a member

        Returns:
            Member: A new Member instance

        Raises:
            WireFormatError: if the public key is not canonical or not a valid group element
        """
        member = cls(
            data['id'],
            validate_public_key(parse_decimal(data['publicKey'])),
            sealed_private_key=data.get('sealedPrivateKey'),
            sealed_payload=data.get('sealedPayload'),
        )
        member.excluded = data.get('excluded', False)
        return member


def open_assignment(private_key, final_message):
    """
    Decrypt and decode a final message.

    Returns:
        Payload: The santee's name, address and note

    Raises:
        MalformedPayload: if the message was not encrypted for this key
    """
    return codec.decode(ElGamalCrypto.decrypt(private_key, final_message.ciphertext))


class Participant:
    """
    The member's own side of the protocol.

    Holds the plaintext payload and the key pair; neither ever leaves this
    object unsealed.
    """

    def __init__(self, member_id, payload, keys):
        self.member_id = member_id
        self.payload = codec.Payload(*payload)
        self.keys = keys

    @classmethod
    def create(cls, member_id, name, address, note, rng=None):
        """
        Create a participant with a fresh key pair.

        Raises:
            PayloadTooLarge: if the payload does not fit the codec budget
        """
        codec.encode(name, address, note)
        keys = ElGamalCrypto.generate_keypair(rng)
        logger.debug("Generated key pair for member %s", member_id)
        return cls(member_id, (name, address, note), keys)

    @classmethod
    def unlock(cls, member, password, iterations=None):
        """
        Recover a participant from the coordinator's record and the password.

        Raises:
            InvalidPassword: if either sealed value does not open
        """
        private_key = vault.open_private_key(member.sealed_private_key, password, iterations)
        payload = vault.open_payload(member.sealed_payload, password, iterations)
        return cls(member.id, payload, KeyPair(public_key=member.public_key, private_key=private_key))

    def to_member(self, password, iterations=None):
        """
        Build the coordinator record, sealing the secrets with the password.

        Returns:
            Member: record carrying only the public key and sealed values
        """
        return Member(
            self.member_id,
            self.keys.public_key,
            sealed_private_key=vault.seal_private_key(self.keys.private_key, password, iterations),
            sealed_payload=vault.seal_payload(self.payload, password, iterations),
        )

    def encrypt_for(self, recipients, rng=None):
        """
        Encrypt this participant's payload for each recipient.

        Args:
            recipients (iterable): (member_id, public_key) pairs

        Returns:
            list: LedgerCell objects
        """
        cells = encrypt_payload_for(self.member_id, self.payload, recipients, rng)
        logger.info("[%s] Encrypted payload for %d member(s)", self.member_id, len(cells))
        return cells

    def open_assignment(self, final_message):
        return open_assignment(self.keys.private_key, final_message)
