"""
bandledger.core

Shared building blocks: result types, records, journal, crypto, errors.
"""
