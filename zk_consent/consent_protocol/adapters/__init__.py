"""In-process proving backends."""

from .predicate_adapter import PredicateCheckingBackend

__all__ = ["PredicateCheckingBackend"]
