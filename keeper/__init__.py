"""Stream keeper: batched settlement of payment streams with a verifiable audit log."""

__version__ = "0.1.0"
