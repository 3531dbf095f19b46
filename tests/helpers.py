from secret_santa.models.member import Member, Participant

NAMES = ["Alice", "Bob", "Carol", "Dave", "Erin", "Frank", "Grace", "Heidi"]


def make_participants(count, rng):
    return [
        Participant.create(f"m{i + 1}", NAMES[i], f"{i + 1} Main St", f"Likes item {i + 1}", rng)
        for i in range(count)
    ]


def join_all(group, participants, rng):
    """Each participant joins in turn, encrypting for everyone already present."""
    for participant in participants:
        cells = participant.encrypt_for(group.public_keys(), rng)
        group.join(Member(participant.member_id, participant.keys.public_key), cells)


def backfill_all(group, participants, rng, skip=()):
    for participant in participants:
        if participant.member_id in skip:
            continue
        targets = group.record_login(participant.member_id)
        if targets:
            group.submit_backfill(participant.member_id, participant.encrypt_for(targets, rng))


def follow_cycle(edges):
    """Return the members visited following santa -> santee from the first santa."""
    successor = dict(edges)
    start = edges[0][0]
    visited = [start]
    current = successor[start]
    while current != start:
        visited.append(current)
        current = successor[current]
    return visited
