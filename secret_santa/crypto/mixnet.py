"""
Re-encryption mixnet used to build the gift-giving cycle.

Each member's public key is encrypted under an ephemeral session key and
tagged with the member id. The batch passes through a cascade of mix nodes,
each re-encrypting and shuffling it, before the session key decrypts it.
Sorting the recovered public keys numerically then fixes the cycle order,
which is independent of join order and of the positions seen before mixing.
"""
import logging
import secrets

from secret_santa import config
from secret_santa.crypto.elgamal import ElGamalCrypto
from secret_santa.errors import InsufficientMembers, KeyCollision

logger = logging.getLogger(__name__)

_system_rng = secrets.SystemRandom()


def secure_shuffle(items, rng=None):
    """
    In-place Fisher-Yates shuffle.

    Args:
        items (list): List to shuffle
        rng: Random source with randrange(); defaults to the system CSPRNG
    """
    rng = rng or _system_rng
    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]
    return items


class MixNode:
    """
    Single node in a mixnet cascade.

    Each node re-encrypts every ciphertext of the batch it is handed under
    the session public key and shuffles it to break positional correlation.
    A node holds no messages between calls.
    """

    def __init__(self, name):
        """
        Args:
            name (str): Name of this mix node for identification
        """
        self.name = name

    def process_batch(self, batch, public_key, rng=None):
        """
        Re-encrypt and shuffle a batch.

        Args:
            batch (list): Tagged ciphertexts, each
                {'member_id', 'encrypted', 'processed_by_nodes'}
            public_key (int): Session public key the batch is encrypted under
            rng: Random source for re-encryption exponents and the shuffle

        Returns:
            list: New messages in their new order; the input is left untouched
        """
        processed = []
        for message in batch:
            processed.append({
                'member_id': message['member_id'],
                'encrypted': ElGamalCrypto.reencrypt(public_key, message['encrypted'], rng),
                'processed_by_nodes': message['processed_by_nodes'] + [self.name],
            })
        secure_shuffle(processed, rng)
        logger.info("[%s] Re-encrypted and shuffled batch of %d", self.name, len(processed))
        return processed


class CycleMixer:
    """
    Builds a single random cycle over a group's members through a mix cascade.
    """

    def __init__(self, node_count=None):
        """
        Args:
            node_count (int, optional): Number of mix nodes; defaults to config.MIX_NODES
        """
        node_count = config.MIX_NODES if node_count is None else node_count
        if node_count < 1:
            raise ValueError("A mix cascade needs at least one node")
        self.nodes = [MixNode(f"node{i}") for i in range(1, node_count + 1)]

    def mix(self, members, session_keys, rng=None):
        """
        Encrypt, tag and pass the members' public keys through every node.

        Args:
            members (list): (member_id, public_key) pairs
            session_keys (KeyPair): Ephemeral key pair for this run
            rng: Random source

        Returns:
            list: Mixed messages, each with the full node history
        """
        messages = [
            {
                'member_id': member_id,
                'encrypted': ElGamalCrypto.encrypt(session_keys.public_key, public_key, rng),
                'processed_by_nodes': [],
            }
            for member_id, public_key in members
        ]

        for i, node in enumerate(self.nodes):
            messages = node.process_batch(messages, session_keys.public_key, rng)
            logger.debug("Node %d/%d (%s) output %d messages", i + 1, len(self.nodes), node.name, len(messages))

        all_node_names = [node.name for node in self.nodes]
        for message in messages:
            if message['processed_by_nodes'] != all_node_names:
                raise RuntimeError(
                    f"Message did not pass through all mix nodes: {message['processed_by_nodes']}"
                )
        return messages

    def build_cycle(self, members, rng=None):
        """
        Produce santa -> santee edges forming one cycle over all members.

        Args:
            members (list): (member_id, public_key) pairs of the active members
            rng: Random source; defaults to the system CSPRNG

        Returns:
            list: (santa_id, santee_id) tuples in cycle order

        Raises:
            InsufficientMembers: if fewer than config.MIN_MEMBERS members are given
            KeyCollision: if two members share a public key
        """
        members = list(members)
        if len(members) < config.MIN_MEMBERS:
            raise InsufficientMembers(len(members), config.MIN_MEMBERS)

        session_keys = ElGamalCrypto.generate_keypair(rng)
        messages = self.mix(members, session_keys, rng)

        decrypted = [
            (ElGamalCrypto.decrypt(session_keys.private_key, message['encrypted']), message['member_id'])
            for message in messages
        ]
        del session_keys

        decrypted.sort(key=lambda pair: pair[0])
        for (key_a, id_a), (key_b, id_b) in zip(decrypted, decrypted[1:]):
            if key_a == key_b:
                raise KeyCollision(key_a, [id_a, id_b])

        n = len(decrypted)
        edges = [(decrypted[i][1], decrypted[(i + 1) % n][1]) for i in range(n)]
        logger.info("Built cycle over %d members through %d mix nodes", n, len(self.nodes))
        return edges
