"""Deterministic answers that never need the language model.

Only age/birthday questions are handled here: they can be answered exactly
from the person's recorded dates, and a small model tends to get the
arithmetic wrong.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from novana.chat.models import Person

_AGE_QUESTION = re.compile(r"\b(?:how old|age|birthday|born)\b", re.IGNORECASE)


def is_age_question(message: str) -> bool:
    """True when the message uses age/birthday vocabulary."""
    return bool(_AGE_QUESTION.search(message or ""))


def parse_date(value: str | date | None) -> date | None:
    """Parse an ISO date (or the date part of an ISO timestamp). None if invalid."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def years_between(start: date, end: date) -> int:
    """Completed calendar years from *start* to *end*."""
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def answer_age(message: str, person: Person | None, today: date | None = None) -> str | None:
    """Answer an age question from the person's dates.

    Returns None when the message is not an age question, so the caller
    falls through to generation.
    """
    if not is_age_question(message):
        return None
    if person is None:
        return "I don't have their birthday recorded. You can add it on the profile."

    birth = parse_date(person.birth_date)
    if birth is None:
        return f"I don't have {person.name or 'them'}'s birth date yet."

    death = parse_date(person.death_date)
    if death is not None:
        age = years_between(birth, death)
        return f"They were {age} years old ({birth.isoformat()} → {death.isoformat()})."

    age = years_between(birth, today or date.today())
    return f"They'd be about {age} years old (born {birth.isoformat()})."
