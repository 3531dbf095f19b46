#!/usr/bin/env python3
"""
Run a whole exchange in memory and print who gives to whom.

Members join one at a time, the group closes, everyone logs back in to
backfill, the cycle is built, and each member decrypts their own assignment.
"""
import argparse
import logging
import random
import sys

from secret_santa import config
from secret_santa.crypto.mixnet import CycleMixer
from secret_santa.models.group import Group, GroupStatus
from secret_santa.models.member import Participant

SAMPLE_NAMES = ["Alice", "Bob", "Carol", "Dave", "Erin", "Frank", "Grace", "Heidi", "Ivan", "Judy"]


def run_exchange(member_count, rng=None, mix_nodes=None):
    """
    Simulate an exchange end to end.

    Returns:
        tuple: (group, {santa name: santee payload})
    """
    group = Group('demo', mixer=CycleMixer(mix_nodes))
    participants = {}

    for i in range(member_count):
        name = SAMPLE_NAMES[i % len(SAMPLE_NAMES)] + ('' if i < len(SAMPLE_NAMES) else str(i))
        participant = Participant.create(f"m{i + 1}", name, f"{i + 1} Main St", f"Likes gift #{i + 1}", rng)
        cells = participant.encrypt_for(group.public_keys(), rng)
        # The secrets are sealed by the member's own client; the demo keeps keys in memory
        group.join(participant.to_member(password=name.lower(), iterations=1000), cells)
        participants[participant.member_id] = participant

    group.close()
    for member_id, participant in participants.items():
        targets = group.record_login(member_id)
        if targets:
            group.submit_backfill(member_id, participant.encrypt_for(targets, rng))

    if group.status is not GroupStatus.READY:
        raise RuntimeError(f"Group did not become ready: {group.completeness().missing_pairs}")

    group.initiate_cycle(rng)
    results = {}
    for santa_id, final_message in group.deliveries():
        santa = participants[santa_id]
        results[santa.payload.name] = santa.open_assignment(final_message)
    return group, results


def main(argv=None):
    """Main function"""
    parser = argparse.ArgumentParser(description='Simulate a private gift exchange')
    parser.add_argument('--members', type=int, default=6, help='Number of members (at least 4)')
    parser.add_argument('--seed', type=int, help='Seed for reproducible runs (not for real exchanges)')
    parser.add_argument('--mix-nodes', type=int, default=config.MIX_NODES, help='Mix nodes in the cascade')
    parser.add_argument('--log-level', default=config.LOG_LEVEL, help='Logging level')

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format='%(levelname)s %(name)s: %(message)s')

    if args.members < config.MIN_MEMBERS:
        parser.error(f"--members must be at least {config.MIN_MEMBERS}")

    rng = random.Random(args.seed) if args.seed is not None else None
    group, results = run_exchange(args.members, rng, args.mix_nodes)

    print(f"Group {group.id}: {group.status.value}, {len(results)} assignments")
    for santa, santee in results.items():
        print(f"{santa} -> {santee.name} ({santee.address}; {santee.note})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
