"""race_ledger - session ledger, settlement protocol and weighted-claim treasury."""

__version__ = "0.1.0"
