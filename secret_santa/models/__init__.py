"""
Models for the exchange: members, the cross-encryption ledger, messages and
the group lifecycle.
"""
