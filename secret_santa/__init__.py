"""
Private gift exchange engine.

Members are paired in one random cycle without the coordinator learning who
gives to whom or reading any member's details.
"""
import logging

__version__ = '0.1.0'

logging.getLogger(__name__).addHandler(logging.NullHandler())
