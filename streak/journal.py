import random
from datetime import datetime
from typing import List, Optional

from streak.days import to_epoch_ms
from streak.schemas import JournalEntry

DEFAULT_PHRASE = "You got this! One clean day at a time."


def add_motivation(motivations: List[str], text: str) -> List[str]:
    text = (text or "").strip()
    if not text:
        raise ValueError("Motivation text cannot be empty")
    return motivations + [text]


def remove_at(items: list, index: int) -> list:
    if index < 0 or index >= len(items):
        raise IndexError(f"No entry at index {index}")
    return items[:index] + items[index + 1:]


def pick_motivation(motivations: List[str], rng: Optional[random.Random] = None) -> str:
    if not motivations:
        return DEFAULT_PHRASE
    return (rng or random).choice(motivations)


def add_entry(journal: List[JournalEntry], text: str, now: Optional[datetime] = None) -> List[JournalEntry]:
    """Prepend a journal entry; the journal is kept newest first."""
    text = (text or "").strip()
    if not text:
        raise ValueError("Journal text cannot be empty")
    entry = JournalEntry(ts=to_epoch_ms(now or datetime.now()), text=text)
    return [entry] + list(journal)
