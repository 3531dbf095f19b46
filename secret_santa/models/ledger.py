"""
Cross-encryption ledger.

Holds one ciphertext per ordered pair of members: the sender's payload
encrypted under the recipient's public key. Cells are append-only and
inserting a cell for an existing pair is a no-op, so concurrent backfills
by different senders never conflict.
"""
import logging
import threading
from collections import namedtuple

from secret_santa.crypto import codec
from secret_santa.crypto.elgamal import ElGamalCrypto
from secret_santa.models.message import LedgerCell

logger = logging.getLogger(__name__)


class CompletenessReport(namedtuple('CompletenessReport', ['complete', 'missing_pairs', 'missing_senders'])):
    """
    Result of a completeness check.

    missing_pairs are (sender_id, recipient_id) tuples; missing_senders are the
    members who still owe a backfill.
    """
    __slots__ = ()

    def to_dict(self):
        return {
            'complete': self.complete,
            'missingPairs': [[sender, recipient] for sender, recipient in self.missing_pairs],
            'missingMembers': list(self.missing_senders),
        }


def encrypt_payload_for(sender_id, payload, recipients, rng=None):
    """
    Encrypt one member's payload for every given recipient.

    Used both at join time (for members already present) and at backfill
    time (for members who joined later).

    Args:
        sender_id (str): The member whose payload this is
        payload (tuple): (name, address, note)
        recipients (iterable): (recipient_id, public_key) pairs
        rng: Random source for the ephemeral exponents

    Returns:
        list: LedgerCell objects, one per recipient other than the sender
    """
    message = codec.encode(*payload)
    public_keys = {recipient_id: public_key for recipient_id, public_key in recipients if recipient_id != sender_id}
    encrypted = ElGamalCrypto.encrypt_for_multiple(public_keys, message, rng)
    return [LedgerCell(sender_id, recipient_id, ciphertext) for recipient_id, ciphertext in encrypted.items()]


class Ledger:
    """
    Append-only store of ledger cells keyed by (sender_id, recipient_id).
    """

    def __init__(self):
        self._cells = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._cells)

    def __contains__(self, pair):
        with self._lock:
            return pair in self._cells

    def insert(self, cell):
        """
        Store a cell unless one already exists for its pair.

        Args:
            cell (LedgerCell): Cell to store

        Returns:
            bool: True if the cell was created, False if the pair was already present
        """
        if cell.sender_id == cell.recipient_id:
            raise ValueError(f"Member {cell.sender_id} cannot encrypt for themselves")
        with self._lock:
            if cell.key in self._cells:
                logger.info("[Ledger] Cell %s -> %s already present, skipped", cell.sender_id, cell.recipient_id)
                return False
            self._cells[cell.key] = cell
        logger.debug("[Ledger] Stored cell %s -> %s", cell.sender_id, cell.recipient_id)
        return True

    def insert_many(self, cells):
        """
        Store several cells.

        Returns:
            tuple: (created, skipped) counts
        """
        created = skipped = 0
        for cell in cells:
            if self.insert(cell):
                created += 1
            else:
                skipped += 1
        return created, skipped

    def get(self, sender_id, recipient_id):
        with self._lock:
            return self._cells.get((sender_id, recipient_id))

    def cells_from(self, sender_id):
        with self._lock:
            return [cell for (sender, _), cell in self._cells.items() if sender == sender_id]

    def pending_for(self, sender_id, member_ids):
        """
        Recipients among member_ids that sender_id has not yet encrypted for.
        """
        with self._lock:
            return [
                recipient_id for recipient_id in member_ids
                if recipient_id != sender_id and (sender_id, recipient_id) not in self._cells
            ]

    def completeness(self, member_ids):
        """
        Check that every ordered pair of distinct members has a cell.

        Args:
            member_ids (iterable): Ids of the active members

        Returns:
            CompletenessReport
        """
        member_ids = list(member_ids)
        with self._lock:
            present = set(self._cells)

        missing = sorted(
            (sender, recipient)
            for sender in member_ids
            for recipient in member_ids
            if sender != recipient and (sender, recipient) not in present
        )
        senders = sorted({sender for sender, _ in missing})
        if missing:
            logger.info(
                "[Ledger] %d cell(s) missing across %d member(s); awaiting backfill from %s",
                len(missing), len(member_ids), ', '.join(map(str, senders)),
            )
        return CompletenessReport(not missing, missing, senders)
