"""Network transports for the consent verification service."""
