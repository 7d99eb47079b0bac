"""Job, bid and escrow lifecycle engine for an on-demand services marketplace."""

__version__ = "0.1.0"
