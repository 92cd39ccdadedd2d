"""Zero-knowledge cookie consent: client prover, verification server, transport."""

__version__ = "0.1.0"
