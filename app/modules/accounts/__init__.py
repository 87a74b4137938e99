"""
Account Module

Balance and settlement ledger queries for the calling account.
"""
