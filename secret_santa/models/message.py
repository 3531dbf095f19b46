"""
Message models for the exchange.

Ledger cells are the pre-computed pairwise ciphertexts; final messages are
the cells republished to each santa once the cycle exists. Integers cross
the boundary as decimal strings.
"""
import time

from secret_santa.crypto.elgamal import Ciphertext
from secret_santa.errors import WireFormatError


def _require(data, *keys):
    missing = [key for key in keys if key not in data]
    if missing:
        raise WireFormatError(f"Missing field(s): {', '.join(missing)}")


class LedgerCell:
    """
    A sender's payload encrypted under one recipient's public key.
    """

    def __init__(self, sender_id, recipient_id, ciphertext):
        """
        Initialize a new ledger cell.

        Args:
            sender_id (str): Member whose payload is encrypted
            recipient_id (str): Member whose public key was used
            ciphertext (Ciphertext): Encrypt(recipient.public_key, encode(sender.payload))
        """
        self.sender_id = sender_id
        self.recipient_id = recipient_id
        self.ciphertext = ciphertext
        self.created_at = int(time.time() * 1000)

    @property
    def key(self):
        return (self.sender_id, self.recipient_id)

    def __eq__(self, other):
        if isinstance(other, LedgerCell):
            return self.key == other.key and self.ciphertext == other.ciphertext
        return NotImplemented

    def __hash__(self):
        return hash((self.key, self.ciphertext))

    def __repr__(self):
        return f"LedgerCell({self.sender_id!r} -> {self.recipient_id!r})"

    def to_dict(self):
        """
        Convert the cell to a dictionary for JSON serialization.

        Returns:
            dict: Dictionary representation of the cell
        """
        data = {
            'senderId': self.sender_id,
            'recipientId': self.recipient_id,
        }
        data.update(self.ciphertext.to_dict())
        return data

    @classmethod
    def from_dict(cls, data):
        """
        Create a cell from a dictionary.

        Args:
            data (dict): Dictionary representation of a cell

        Returns:
            LedgerCell: A new LedgerCell instance
        """
        _require(data, 'senderId', 'recipientId', 'c1', 'c2')
        return cls(data['senderId'], data['recipientId'], Ciphertext.from_dict(data))


class Assignment:
    """
    One directed edge of the gift-giving cycle.
    """

    def __init__(self, santa_id, santee_id):
        if santa_id == santee_id:
            raise ValueError(f"Member {santa_id} cannot be their own santa")
        self.santa_id = santa_id
        self.santee_id = santee_id

    def __eq__(self, other):
        if isinstance(other, Assignment):
            return (self.santa_id, self.santee_id) == (other.santa_id, other.santee_id)
        return NotImplemented

    def __hash__(self):
        return hash((self.santa_id, self.santee_id))

    def __repr__(self):
        return f"Assignment({self.santa_id!r} -> {self.santee_id!r})"

    def to_dict(self):
        return {
            'santaId': self.santa_id,
            'santeeId': self.santee_id,
        }

    @classmethod
    def from_dict(cls, data):
        _require(data, 'santaId', 'santeeId')
        return cls(data['santaId'], data['santeeId'])


class FinalMessage:
    """
    The ciphertext published to a santa: their santee's payload under the santa's key.

    Built from the existing ledger cell (santee -> santa), never freshly encrypted.
    """

    def __init__(self, recipient_id, ciphertext):
        """
        Args:
            recipient_id (str): The santa who can decrypt this message
            ciphertext (Ciphertext): Copied from LedgerCell(santee, santa)
        """
        self.recipient_id = recipient_id
        self.ciphertext = ciphertext

    @classmethod
    def from_cell(cls, cell):
        return cls(cell.recipient_id, cell.ciphertext)

    def __eq__(self, other):
        if isinstance(other, FinalMessage):
            return (self.recipient_id, self.ciphertext) == (other.recipient_id, other.ciphertext)
        return NotImplemented

    def __hash__(self):
        return hash((self.recipient_id, self.ciphertext))

    def __repr__(self):
        return f"FinalMessage(for {self.recipient_id!r})"

    def to_dict(self):
        data = {'recipientId': self.recipient_id}
        data.update(self.ciphertext.to_dict())
        return data

    @classmethod
    def from_dict(cls, data):
        _require(data, 'recipientId', 'c1', 'c2')
        return cls(data['recipientId'], Ciphertext.from_dict(data))
