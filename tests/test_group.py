import threading

import pytest

from secret_santa.crypto.elgamal import P
from secret_santa.crypto.mixnet import CycleMixer
from secret_santa.errors import (
    DuplicateMember,
    InsufficientMembers,
    InvalidPublicKey,
    InvalidTransition,
    LedgerIncomplete,
    MalformedPayload,
    UnknownMember,
)
from secret_santa.models.group import Group, GroupStatus
from secret_santa.models.member import Member

from tests.helpers import backfill_all, follow_cycle, join_all, make_participants


@pytest.fixture
def group():
    return Group('g1', mixer=CycleMixer(node_count=1))


@pytest.fixture
def participants(rng):
    return make_participants(5, rng)


@pytest.fixture
def ready_group(group, participants, rng):
    join_all(group, participants, rng)
    group.close()
    backfill_all(group, participants, rng)
    return group


def test_joiners_encrypt_for_earlier_members(group, participants, rng):
    join_all(group, participants, rng)
    assert group.status is GroupStatus.OPEN
    # each joiner covers everyone before them: 0 + 1 + 2 + 3 + 4
    assert len(group.ledger) == 10
    report = group.completeness()
    assert ("m1", "m2") in report.missing_pairs
    assert ("m2", "m1") not in report.missing_pairs


def test_full_lifecycle(ready_group, participants, rng):
    assert ready_group.status is GroupStatus.READY
    assert len(ready_group.ledger) == 5 * 4

    results = ready_group.initiate_cycle(rng)
    assert ready_group.status is GroupStatus.CYCLE_INITIATED

    edges = [(a.santa_id, a.santee_id) for a, _ in results]
    assert len(edges) == 5
    assert len(follow_cycle(edges)) == 5

    by_id = {p.member_id: p for p in participants}
    for assignment, message in results:
        assert message.recipient_id == assignment.santa_id
        cell = ready_group.ledger.get(assignment.santee_id, assignment.santa_id)
        assert message.ciphertext == cell.ciphertext
        santa = by_id[assignment.santa_id]
        assert santa.open_assignment(message) == by_id[assignment.santee_id].payload


def test_each_member_can_only_read_their_own(ready_group, participants, rng):
    ready_group.initiate_cycle(rng)
    first, second = participants[0], participants[1]
    with pytest.raises(MalformedPayload):
        second.open_assignment(ready_group.final_message_for(first.member_id))


def test_deliveries(ready_group, rng):
    with pytest.raises(InvalidTransition):
        ready_group.deliveries()
    ready_group.initiate_cycle(rng)
    deliveries = ready_group.deliveries()
    assert sorted(recipient for recipient, _ in deliveries) == ["m1", "m2", "m3", "m4", "m5"]
    assert all(message.recipient_id == recipient for recipient, message in deliveries)


def test_join_after_close_rejected(ready_group, rng):
    newcomer = make_participants(6, rng)[5]
    with pytest.raises(InvalidTransition):
        ready_group.join(Member(newcomer.member_id, newcomer.keys.public_key))


def test_duplicate_join_rejected(group, participants, rng):
    join_all(group, participants[:2], rng)
    with pytest.raises(DuplicateMember):
        group.join(Member("m1", 12345))
    with pytest.raises(DuplicateMember):
        group.join(Member("m9", participants[0].keys.public_key))


def test_join_rejects_trivial_public_key(group, participants, rng):
    join_all(group, participants[:4], rng)
    with pytest.raises(InvalidPublicKey):
        group.join(Member("m9", 1))
    assert "m9" not in group.members
    assert group.public_keys() == [(p.member_id, p.keys.public_key) for p in participants[:4]]


def test_join_rejects_unreduced_public_key(group, participants, rng):
    join_all(group, participants[:4], rng)
    alice = participants[0]
    with pytest.raises(InvalidPublicKey):
        group.join(Member("m9", alice.keys.public_key + P))
    assert "m9" not in group.members


def test_join_rejects_non_residue(group):
    with pytest.raises(InvalidPublicKey):
        group.join(Member("m1", P - 2))
    assert group.members == {}


def test_join_with_foreign_cells_is_rolled_back(group, participants, rng):
    join_all(group, participants[:2], rng)
    carol = participants[2]
    forged = participants[0].encrypt_for([("m2", participants[1].keys.public_key)], rng)
    cells = carol.encrypt_for(group.public_keys(), rng) + forged
    with pytest.raises(ValueError):
        group.join(Member(carol.member_id, carol.keys.public_key), cells)
    assert "m3" not in group.members
    assert len(group.ledger) == 1


def test_close_needs_four_active_members(group, participants, rng):
    join_all(group, participants[:3], rng)
    with pytest.raises(InsufficientMembers):
        group.close()
    assert group.status is GroupStatus.OPEN


def test_close_twice_rejected(group, participants, rng):
    join_all(group, participants, rng)
    group.close()
    with pytest.raises(InvalidTransition):
        group.close()


def test_backfill_targets_are_later_joiners(group, participants, rng):
    join_all(group, participants, rng)
    group.close()
    targets = group.record_login("m2")
    assert [member_id for member_id, _ in targets] == ["m3", "m4", "m5"]
    assert group.record_login("m5") == []


def test_ready_only_after_last_backfill(group, participants, rng):
    join_all(group, participants, rng)
    group.close()
    assert group.status is GroupStatus.CLOSED
    backfill_all(group, participants, rng, skip={"m1"})
    assert group.status is GroupStatus.CLOSED

    alice = participants[0]
    created, skipped = group.submit_backfill("m1", alice.encrypt_for(group.backfill_targets("m1"), rng))
    assert (created, skipped) == (4, 0)
    assert group.status is GroupStatus.READY


def test_backfill_is_idempotent(ready_group, participants, rng):
    alice = participants[0]
    cells = alice.encrypt_for(ready_group.public_keys(exclude="m1"), rng)
    assert ready_group.submit_backfill("m1", cells) == (0, 4)
    assert len(ready_group.ledger) == 20


def test_backfill_validates_before_storing(group, participants, rng):
    join_all(group, participants, rng)
    group.close()
    alice, bob = participants[0], participants[1]
    good = alice.encrypt_for(group.backfill_targets("m1"), rng)
    bad = bob.encrypt_for([("m3", participants[2].keys.public_key)], rng)
    before = len(group.ledger)
    with pytest.raises(ValueError):
        group.submit_backfill("m1", good + bad)
    assert len(group.ledger) == before


def test_backfill_to_unknown_recipient(group, participants, rng):
    join_all(group, participants, rng)
    outsider = make_participants(6, rng)[5]
    cells = participants[0].encrypt_for([(outsider.member_id, outsider.keys.public_key)], rng)
    with pytest.raises(UnknownMember):
        group.submit_backfill("m1", cells)


def test_initiate_with_missing_cell_writes_nothing(group, participants, rng):
    join_all(group, participants, rng)
    group.close()
    backfill_all(group, participants, rng, skip={"m1"})
    alice = participants[0]
    targets = group.backfill_targets("m1")
    group.submit_backfill("m1", alice.encrypt_for(targets[:-1], rng))
    assert group.status is GroupStatus.CLOSED

    with pytest.raises(LedgerIncomplete) as exc_info:
        group.initiate_cycle(rng)
    assert exc_info.value.missing_pairs == [("m1", "m5")]
    assert exc_info.value.missing_senders == ["m1"]
    assert group.assignments == ()
    assert group.final_messages == {}
    assert group.status is GroupStatus.CLOSED


def test_initiate_while_open_rejected(group, participants, rng):
    join_all(group, participants, rng)
    with pytest.raises(InvalidTransition):
        group.initiate_cycle(rng)


def test_initiate_twice_rejected(ready_group, rng):
    ready_group.initiate_cycle(rng)
    first = ready_group.assignments
    with pytest.raises(InvalidTransition):
        ready_group.initiate_cycle(rng)
    assert ready_group.assignments == first


def test_mixer_failure_commits_nothing(ready_group, rng):
    class BrokenMixer:
        def build_cycle(self, members, rng=None):
            raise RuntimeError("mix node crashed")

    ready_group.mixer = BrokenMixer()
    with pytest.raises(RuntimeError):
        ready_group.initiate_cycle(rng)
    assert ready_group.assignments == ()
    assert ready_group.final_messages == {}
    assert ready_group.status is GroupStatus.READY


def test_excluding_straggler_makes_group_ready(group, participants, rng):
    join_all(group, participants, rng)
    group.close()
    backfill_all(group, participants, rng, skip={"m2"})
    assert group.completeness().missing_senders == ["m2"]

    report = group.exclude("m2")
    assert report.complete
    assert group.status is GroupStatus.READY

    results = group.initiate_cycle(rng)
    members_in_cycle = {a.santa_id for a, _ in results}
    assert members_in_cycle == {"m1", "m3", "m4", "m5"}
    with pytest.raises(UnknownMember):
        group.record_login("m2")


def test_ready_never_regresses(ready_group, rng):
    newcomer = make_participants(6, rng)[5]
    ready_group.members[newcomer.member_id] = Member(newcomer.member_id, newcomer.keys.public_key)
    report = ready_group.check_ready()
    assert not report.complete
    assert ready_group.status is GroupStatus.READY
    with pytest.raises(LedgerIncomplete):
        ready_group.initiate_cycle(rng)


def test_exclusion_dropping_below_minimum_blocks_cycle(group, participants, rng):
    join_all(group, participants[:4], rng)
    group.close()
    backfill_all(group, participants[:4], rng)
    group.exclude("m4")
    with pytest.raises(InsufficientMembers):
        group.initiate_cycle(rng)
    assert group.assignments == ()


def test_concurrent_checks_transition_once(group, participants, rng):
    join_all(group, participants, rng)
    backfill_all(group, participants, rng)
    group.status = GroupStatus.CLOSED

    transitions = []
    original = group._compare_and_set

    def spy(expected, new):
        result = original(expected, new)
        transitions.append(result)
        return result

    group._compare_and_set = spy
    barrier = threading.Barrier(6)

    def login(member_id):
        barrier.wait()
        group.record_login(member_id)

    threads = [threading.Thread(target=login, args=(f"m{i}",)) for i in (1, 2, 3, 4, 5, 1)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert group.status is GroupStatus.READY
    assert transitions == [True]


def test_shipments_complete_the_group(ready_group, rng):
    with pytest.raises(InvalidTransition):
        ready_group.confirm_shipment("m1")
    ready_group.initiate_cycle(rng)

    for member_id in ["m1", "m2", "m3", "m4"]:
        assert ready_group.confirm_shipment(member_id) is True
    assert ready_group.confirm_shipment("m1") is False
    assert ready_group.status is GroupStatus.CYCLE_INITIATED

    ready_group.confirm_shipment("m5")
    assert ready_group.status is GroupStatus.COMPLETE
    with pytest.raises(UnknownMember):
        ready_group.confirm_shipment("m9")


def test_to_dict(ready_group):
    data = ready_group.to_dict()
    assert data['status'] == 'ready'
    assert data['backfillStatus'] == {'complete': True, 'missingPairs': [], 'missingMembers': []}
    assert [m['id'] for m in data['members']] == ["m1", "m2", "m3", "m4", "m5"]
