"""Tests for deterministic age/birthday answers."""

from datetime import date

import pytest

from novana.chat.models import Person
from novana.chat.rules import answer_age, is_age_question, parse_date, years_between

# -- is_age_question -----------------------------------------------------------


@pytest.mark.parametrize(
    "message",
    [
        "How old would she be?",
        "what AGE was he",
        "When is her birthday?",
        "Where was he born?",
        "how old",
    ],
)
def test_age_vocabulary_matches(message: str) -> None:
    assert is_age_question(message)


@pytest.mark.parametrize(
    "message",
    [
        "Tell me about her garden",
        "What did he cook on Sundays?",
        "",
        "I miss them",
        "What was in her last message?",
        "She was so stubborn",
        "Tell me about the cottage",
    ],
)
def test_other_messages_do_not_match(message: str) -> None:
    assert not is_age_question(message)
    assert answer_age(message, Person(id=1, birth_date="1950-01-01")) is None


# -- years_between -------------------------------------------------------------


def test_death_before_birthday_in_final_year() -> None:
    assert years_between(date(1950, 6, 15), date(2020, 6, 10)) == 69


def test_death_on_birthday() -> None:
    assert years_between(date(1950, 6, 15), date(2020, 6, 15)) == 70


def test_death_after_birthday() -> None:
    assert years_between(date(1950, 6, 15), date(2020, 12, 1)) == 70


def test_leap_day_birth() -> None:
    assert years_between(date(2000, 2, 29), date(2021, 2, 28)) == 20
    assert years_between(date(2000, 2, 29), date(2021, 3, 1)) == 21


# -- parse_date ----------------------------------------------------------------


def test_parse_iso_date() -> None:
    assert parse_date("1945-03-01") == date(1945, 3, 1)


def test_parse_timestamp_uses_date_part() -> None:
    assert parse_date("1945-03-01T00:00:00.000Z") == date(1945, 3, 1)


def test_parse_invalid_returns_none() -> None:
    assert parse_date("not a date") is None
    assert parse_date("") is None
    assert parse_date(None) is None


# -- answer_age ----------------------------------------------------------------


def test_birth_only_uses_today() -> None:
    person = Person(id=1, name="Rose", birth_date="1945-03-01")
    reply = answer_age("How old would she be?", person, today=date(2024, 3, 2))
    assert reply == "They'd be about 79 years old (born 1945-03-01)."


def test_birth_only_day_before_birthday() -> None:
    person = Person(id=1, name="Rose", birth_date="1945-03-01")
    reply = answer_age("How old would she be?", person, today=date(2024, 2, 29))
    assert reply == "They'd be about 78 years old (born 1945-03-01)."


def test_birth_and_death() -> None:
    person = Person(id=1, name="Sam", birth_date="1950-06-15", death_date="2020-06-10")
    reply = answer_age("how old was he when he died", person, today=date(2024, 1, 1))
    assert reply == "They were 69 years old (1950-06-15 → 2020-06-10)."


def test_invalid_death_date_falls_back_to_today() -> None:
    person = Person(id=1, name="Sam", birth_date="1950-06-15", death_date="unknown")
    reply = answer_age("how old", person, today=date(2024, 7, 1))
    assert reply == "They'd be about 74 years old (born 1950-06-15)."


def test_no_person_record() -> None:
    reply = answer_age("When was she born?", None)
    assert reply == "I don't have their birthday recorded. You can add it on the profile."


def test_missing_birth_date() -> None:
    reply = answer_age("birthday?", Person(id=1, name="Rose"))
    assert reply == "I don't have Rose's birth date yet."


def test_unparseable_birth_date() -> None:
    reply = answer_age("birthday?", Person(id=1, name="", birth_date="03/01/45"))
    assert reply == "I don't have them's birth date yet."
