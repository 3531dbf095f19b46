"""
Configuration for the exchange engine.

Values are read once at import; environment variables override the defaults.
"""
import os

# Smallest group the cycle constructor will accept
MIN_MEMBERS = 4

# Codec budget for a whole encoded record. 127 bytes < 2^1016 < P.
MAX_ENCODED_BYTES = 127

# Number of re-encryption nodes in the mix cascade
MIX_NODES = int(os.environ.get('SANTA_MIX_NODES', '3'))

# PBKDF2 iterations used when sealing values with a password
KDF_ITERATIONS = int(os.environ.get('SANTA_KDF_ITERATIONS', '100000'))

LOG_LEVEL = os.environ.get('SANTA_LOG_LEVEL', 'WARNING')
