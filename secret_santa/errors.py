"""
Error taxonomy for the exchange engine.

Every error carries the structured data a caller needs to act on it
(field sizes, missing pairs, offending ids), not only a message.
"""


class SecretSantaError(Exception):
    """Base class for all errors raised by this package."""


class PayloadTooLarge(SecretSantaError):
    """The encoded payload would not fit the codec byte budget."""

    def __init__(self, field_sizes, budget):
        """
        Args:
            field_sizes (dict): UTF-8 byte length of each field, keyed by field name
            budget (int): Maximum number of bytes available for the fields
        """
        self.field_sizes = dict(field_sizes)
        self.budget = budget
        sizes = ', '.join(f"{name}={size}" for name, size in self.field_sizes.items())
        super().__init__(
            f"Payload too large: {sum(self.field_sizes.values())} bytes "
            f"({sizes}), budget is {budget} bytes"
        )


class MalformedPayload(SecretSantaError):
    """A decoded integer is not a well-formed record (corruption or wrong key)."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Malformed payload: {reason}")


class InsufficientMembers(SecretSantaError):
    def __init__(self, count, minimum):
        self.count = count
        self.minimum = minimum
        super().__init__(f"Need at least {minimum} members, have {count}")


class KeyCollision(SecretSantaError):
    """Two members decrypted to the same public key during the mix."""

    def __init__(self, public_key, member_ids):
        self.public_key = public_key
        self.member_ids = list(member_ids)
        super().__init__(
            f"Public key collision between members {', '.join(map(str, self.member_ids))}"
        )


class LedgerIncomplete(SecretSantaError):
    """Cross-encryption cells are missing; carries the exact missing pairs."""

    def __init__(self, missing_pairs):
        self.missing_pairs = sorted(missing_pairs)
        super().__init__(f"Ledger incomplete: {len(self.missing_pairs)} cell(s) missing")

    @property
    def missing_senders(self):
        return sorted({sender for sender, _ in self.missing_pairs})


class InvalidTransition(SecretSantaError):
    """A lifecycle operation was attempted in a state that does not allow it."""

    def __init__(self, current, operation):
        self.current = current
        self.operation = operation
        super().__init__(f"Cannot {operation} while group is {current.value}")


class UnknownMember(SecretSantaError):
    def __init__(self, member_id):
        self.member_id = member_id
        super().__init__(f"Unknown or inactive member: {member_id}")


class DuplicateMember(SecretSantaError):
    def __init__(self, member_id):
        self.member_id = member_id
        super().__init__(f"Member already registered: {member_id}")


class InvalidPassword(SecretSantaError):
    """A sealed value could not be authenticated with the given password."""

    def __init__(self):
        super().__init__("Invalid password or corrupted sealed value")


class WireFormatError(SecretSantaError, ValueError):
    """A value crossing the boundary is not in canonical form."""


class InvalidPublicKey(WireFormatError):
    """A member public key is outside the group of quadratic residues."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Invalid public key: {reason}")
