"""
Group model and lifecycle for the exchange.

open -> closed -> ready -> cycle_initiated -> complete, forward only.
The coordinator drives transitions; members fill the ledger by joining and
by backfilling on later logins.
"""
import enum
import logging
import threading

from secret_santa import config
from secret_santa.crypto.elgamal import validate_public_key
from secret_santa.crypto.mixnet import CycleMixer
from secret_santa.errors import (
    DuplicateMember,
    InsufficientMembers,
    InvalidTransition,
    LedgerIncomplete,
    UnknownMember,
)
from secret_santa.models.ledger import Ledger
from secret_santa.models.message import Assignment, FinalMessage

logger = logging.getLogger(__name__)


class GroupStatus(enum.Enum):
    OPEN = 'open'
    CLOSED = 'closed'
    READY = 'ready'
    CYCLE_INITIATED = 'cycle_initiated'
    COMPLETE = 'complete'


class Group:
    """
    Represents one exchange group.
    """

    def __init__(self, id, ledger=None, mixer=None):
        """
        Initialize a new group.

        Args:
            id (str): Group identifier
            ledger (Ledger, optional): Ledger store; a fresh in-memory one by default
            mixer (CycleMixer, optional): Cycle constructor; config.MIX_NODES nodes by default
        """
        self.id = id
        self.status = GroupStatus.OPEN
        self.members = {}  # member_id -> Member, in join order
        self.ledger = ledger if ledger is not None else Ledger()
        self.mixer = mixer if mixer is not None else CycleMixer()
        self.assignments = ()
        self.final_messages = {}  # santa_id -> FinalMessage
        self.shipments = set()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def active_members(self):
        with self._lock:
            return [m for m in self.members.values() if m.active]

    def active_ids(self):
        return [m.id for m in self.active_members()]

    def public_keys(self, exclude=None):
        """
        (member_id, public_key) pairs of the active members, in join order.
        """
        return [(m.id, m.public_key) for m in self.active_members() if m.id != exclude]

    def _active_member(self, member_id):
        member = self.members.get(member_id)
        if member is None or not member.active:
            raise UnknownMember(member_id)
        return member

    def join(self, member, cells=()):
        """
        Admit a member along with the cells they encrypted for earlier members.

        Args:
            member (Member): The joining member
            cells (iterable): LedgerCells sent by this member

        Returns:
            tuple: (created, skipped) cell counts

        Raises:
            InvalidTransition: if the group is no longer open
            DuplicateMember: if the id or public key is already taken
            InvalidPublicKey: if the public key is not a valid group element
        """
        cells = list(cells)
        with self._lock:
            if self.status is not GroupStatus.OPEN:
                raise InvalidTransition(self.status, 'join')
            if member.id in self.members:
                raise DuplicateMember(member.id)
            if any(m.public_key == member.public_key for m in self.members.values()):
                raise DuplicateMember(member.id)
            validate_public_key(member.public_key)

            self.members[member.id] = member
            try:
                self._validate_cells(member.id, cells)
            except Exception:
                del self.members[member.id]
                raise
            created, skipped = self.ledger.insert_many(cells)

        logger.info(
            "[Group %s] Member %s joined (%d active), stored %d cell(s)",
            self.id, member.id, len(self.active_members()), created,
        )
        return created, skipped

    def exclude(self, member_id, excluded=True):
        """
        Set or clear a member's exclusion flag before the cycle is built.

        Returns:
            CompletenessReport: the ledger status for the new active set
        """
        with self._lock:
            if self.status not in (GroupStatus.OPEN, GroupStatus.CLOSED, GroupStatus.READY):
                raise InvalidTransition(self.status, 'change exclusions')
            member = self.members.get(member_id)
            if member is None:
                raise UnknownMember(member_id)
            member.excluded = excluded
            logger.info("[Group %s] Member %s %s", self.id, member_id, 'excluded' if excluded else 'included')
            return self.check_ready()

    def close(self):
        """
        Stop admitting members and start requiring backfill against the final set.

        Raises:
            InvalidTransition: if the group is not open
            InsufficientMembers: if fewer than config.MIN_MEMBERS members are active
        """
        with self._lock:
            if self.status is not GroupStatus.OPEN:
                raise InvalidTransition(self.status, 'close')
            active = self.active_members()
            if len(active) < config.MIN_MEMBERS:
                raise InsufficientMembers(len(active), config.MIN_MEMBERS)
            self.status = GroupStatus.CLOSED
            logger.info("[Group %s] Closed with %d active members", self.id, len(active))
            return self.check_ready()

    # ------------------------------------------------------------------
    # Ledger filling
    # ------------------------------------------------------------------

    def _validate_cells(self, sender_id, cells):
        active = set(self.active_ids())
        for cell in cells:
            if cell.sender_id != sender_id:
                raise ValueError(f"Cell sender {cell.sender_id} does not match member {sender_id}")
            if cell.recipient_id not in active or cell.recipient_id == sender_id:
                raise UnknownMember(cell.recipient_id)

    def backfill_targets(self, member_id):
        """
        Members this member still has to encrypt for.

        Returns:
            list: (member_id, public_key) pairs
        """
        with self._lock:
            self._active_member(member_id)
            pending = set(self.ledger.pending_for(member_id, self.active_ids()))
            return [(mid, key) for mid, key in self.public_keys() if mid in pending]

    def record_login(self, member_id):
        """
        Re-run the completeness check on a member's login.

        Returns:
            list: The member's backfill targets
        """
        with self._lock:
            self._active_member(member_id)
            self.check_ready()
            if self.status in (GroupStatus.CYCLE_INITIATED, GroupStatus.COMPLETE):
                return []
            return self.backfill_targets(member_id)

    def submit_backfill(self, member_id, cells):
        """
        Store cells a returning member encrypted for later joiners.

        All cells are validated before any is stored.

        Returns:
            tuple: (created, skipped) cell counts
        """
        cells = list(cells)
        with self._lock:
            if self.status in (GroupStatus.CYCLE_INITIATED, GroupStatus.COMPLETE):
                raise InvalidTransition(self.status, 'backfill')
            self._active_member(member_id)
            self._validate_cells(member_id, cells)
            created, skipped = self.ledger.insert_many(cells)
            logger.info(
                "[Backfill] Member %s stored %d cell(s), skipped %d", member_id, created, skipped
            )
            self.check_ready()
        return created, skipped

    def completeness(self):
        return self.ledger.completeness(self.active_ids())

    def _compare_and_set(self, expected, new):
        """Transition to new only if the current status is exactly expected."""
        with self._lock:
            if self.status is not expected:
                return False
            self.status = new
            logger.info("[Status Check] Group %s status changed from '%s' to '%s'", self.id, expected.value, new.value)
            return True

    def check_ready(self):
        """
        Idempotent completeness check; moves closed -> ready when the ledger is complete.

        Returns:
            CompletenessReport
        """
        with self._lock:
            report = self.completeness()
            if report.complete and self.status is GroupStatus.CLOSED:
                self._compare_and_set(GroupStatus.CLOSED, GroupStatus.READY)
            return report

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def initiate_cycle(self, rng=None):
        """
        Build the cycle and publish each santa's final message.

        Either everything is written or nothing is.

        Args:
            rng: Random source for the mix; defaults to the system CSPRNG

        Returns:
            list: (Assignment, FinalMessage) pairs

        Raises:
            InvalidTransition: if the group is open or the cycle already exists
            LedgerIncomplete: with the missing pairs, if any cell is missing
            InsufficientMembers: if fewer than config.MIN_MEMBERS members are active
        """
        with self._lock:
            if self.status not in (GroupStatus.CLOSED, GroupStatus.READY):
                raise InvalidTransition(self.status, 'initiate the cycle')

            report = self.completeness()
            if not report.complete:
                logger.warning(
                    "[Group %s] Refusing to initiate cycle: %d cell(s) missing",
                    self.id, len(report.missing_pairs),
                )
                raise LedgerIncomplete(report.missing_pairs)

            edges = self.mixer.build_cycle(self.public_keys(), rng)

            results = []
            for santa_id, santee_id in edges:
                cell = self.ledger.get(santee_id, santa_id)
                if cell is None:
                    raise LedgerIncomplete([(santee_id, santa_id)])
                results.append((Assignment(santa_id, santee_id), FinalMessage.from_cell(cell)))

            self.assignments = tuple(assignment for assignment, _ in results)
            self.final_messages = {assignment.santa_id: message for assignment, message in results}
            self.status = GroupStatus.CYCLE_INITIATED
            logger.info("[Group %s] Cycle initiated over %d members", self.id, len(results))
            return results

    def deliveries(self):
        """
        (recipient_member_id, FinalMessage) pairs for the notification layer.
        """
        with self._lock:
            if self.status not in (GroupStatus.CYCLE_INITIATED, GroupStatus.COMPLETE):
                raise InvalidTransition(self.status, 'deliver final messages')
            return [(a.santa_id, self.final_messages[a.santa_id]) for a in self.assignments]

    def final_message_for(self, member_id):
        with self._lock:
            if self.status not in (GroupStatus.CYCLE_INITIATED, GroupStatus.COMPLETE):
                raise InvalidTransition(self.status, 'read final messages')
            try:
                return self.final_messages[member_id]
            except KeyError:
                raise UnknownMember(member_id) from None

    def confirm_shipment(self, member_id):
        """
        Record that a member sent their gift; completes the group when all have.

        Returns:
            bool: True if this confirmation was new
        """
        with self._lock:
            if self.status not in (GroupStatus.CYCLE_INITIATED, GroupStatus.COMPLETE):
                raise InvalidTransition(self.status, 'confirm shipment')
            if member_id not in self.final_messages:
                raise UnknownMember(member_id)
            if member_id in self.shipments:
                return False
            self.shipments.add(member_id)
            if self.shipments >= set(self.final_messages):
                self._compare_and_set(GroupStatus.CYCLE_INITIATED, GroupStatus.COMPLETE)
            return True

    def to_dict(self):
        """
        Convert the group to a dictionary for JSON serialization.

        Returns:
            dict: Dictionary representation of the group
        """
        with self._lock:
            return {
                'id': self.id,
                'status': self.status.value,
                'members': [m.to_dict() for m in self.members.values()],
                'backfillStatus': self.completeness().to_dict(),
                'shipments': sorted(self.shipments),
            }
