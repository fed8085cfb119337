# Domain Review Package
from .models import Attempt, CardStatus, Rating, ReviewState
from .ports import FlashcardCatalog, ReviewStore

__all__ = [
    "Rating",
    "CardStatus",
    "ReviewState",
    "Attempt",
    "ReviewStore",
    "FlashcardCatalog",
]
