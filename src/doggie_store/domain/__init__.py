"""Domain value types for the dog store."""

from doggie_store.domain.models import DecodeError, Dog

__all__ = ["DecodeError", "Dog"]
