"""External store interfaces and the EventKit implementation."""

from .base import ExternalStore, PhraseParser
from .eventkit import EventKitStore

__all__ = ['ExternalStore', 'PhraseParser', 'EventKitStore']
