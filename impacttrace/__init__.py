"""ImpactTrace: evidence-to-claim matching, coverage and link consistency."""

__version__ = "0.1.0"
