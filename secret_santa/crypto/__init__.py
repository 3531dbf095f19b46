"""
Crypto layer for the secret exchange.

This package contains:
- ElGamal encryption over a fixed safe-prime group
- The payload codec mapping (name, address, note) to a plaintext integer
- The re-encryption mixnet that builds the gift-giving cycle
- The password vault members use to keep secrets at rest
"""
