"""IDL-driven value conversion and PDA derivation for Solana programs."""

__version__ = "0.1.0"
