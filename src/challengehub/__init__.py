"""ChallengeHub challenge funding, reconciliation and payout engine."""

__version__ = "0.1.0"
