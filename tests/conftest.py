"""Shared fixtures for corrigible tests.

Domain: schools with a course offer and a list of position assignments.

    offer:        [{"code", "language", "shift"}]   filters: night, language, courses
    assignments:  [{"position", "phone"}]            filters: positions, phoned
                                                     synthesis: phone_vacancies
    vacancies:    {"position": count}                read by phone_vacancies

Chains:
    language → positions   (bilingual courses imply bilingual positions)
    courses  → positions   (dropping every course of a position drops the position)
    desirable (anchor) → courses
"""

from __future__ import annotations

import pytest

from corrigible.config import reset_config
from corrigible.observability import reset as obs_reset
from corrigible.record import Record
from corrigible.registry import CorrectionRegistry
from corrigible.store import RecordStore
from corrigible.types import ChainRule, CorrectionDefinition

# =============================================================================
# Helpers
# =============================================================================

# Which positions each course code can staff
COURSE_POSITIONS = {
    "SMR": ["0590107", "0591227"],
    "ASIR": ["0590107"],
    "DAW": ["0590107"],
    "EN-B": ["1190011"],
}
LANGUAGE_POSITIONS = {"en": "11", "fr": "10"}


def is_night(course, offer, params):
    return course["shift"] == "night"


def by_language(course, offer, params):
    return course["language"] in params["languages"]


def by_course(course, offer, params):
    return course["code"] in params["codes"]


def by_position(assignment, assignments, params):
    return assignment["position"] in params["positions"]


def not_phoned(assignment, assignments, params):
    return not assignment["phone"]


def phone_vacancies(assignments, params):
    vacancies = assignments.owner.data.get("vacancies", {})
    return [
        {"position": position, "phone": True}
        for position, count in sorted(vacancies.items())
        for _ in range(count)
    ]


def language_to_positions(params):
    prefixes = [LANGUAGE_POSITIONS[lang] for lang in params["languages"] if lang in LANGUAGE_POSITIONS]
    positions = sorted(
        position
        for codes in COURSE_POSITIONS.values()
        for position in codes
        if any(position.startswith(p) for p in prefixes)
    )
    return {"positions": sorted(set(positions))} if positions else False


def courses_to_positions(params):
    kept = [code for code in COURSE_POSITIONS if code not in params["codes"]]
    still_taught = {p for code in kept for p in COURSE_POSITIONS[code]}
    orphaned = sorted(
        {p for codes in COURSE_POSITIONS.values() for p in codes} - still_taught
    )
    return {"positions": orphaned} if orphaned else False


def desirable_to_courses(params):
    return {"codes": list(params["undesirable"])} if params["undesirable"] else False


def make_registry() -> CorrectionRegistry:
    registry = CorrectionRegistry("school")
    registry.register(CorrectionDefinition.filter("night", "offer", is_night))
    registry.register(CorrectionDefinition.filter(
        "language",
        "offer",
        by_language,
        chain=[ChainRule("positions", language_to_positions)],
    ))
    registry.register(CorrectionDefinition.filter(
        "courses",
        "offer",
        by_course,
        chain=[ChainRule("positions", courses_to_positions)],
        subsumes=lambda old, new: set(new["codes"]) <= set(old["codes"]),
    ))
    registry.register(CorrectionDefinition.filter("positions", "assignments", by_position))
    registry.register(CorrectionDefinition.filter("phoned", "assignments", not_phoned))
    registry.register(CorrectionDefinition.synthesize(
        "phone_vacancies", "assignments", phone_vacancies,
    ))
    registry.register(CorrectionDefinition.anchor_for(
        "desirable",
        "offer",
        chain=[ChainRule("courses", desirable_to_courses)],
    ))
    return registry


def school_data() -> dict:
    return {
        "name": "IES Example",
        "offer": [
            {"code": "SMR", "language": None, "shift": "day"},
            {"code": "ASIR", "language": "en", "shift": "day"},
            {"code": "DAW", "language": None, "shift": "night"},
            {"code": "EN-B", "language": "en", "shift": "night"},
        ],
        "assignments": [
            {"position": "0590107", "phone": False},
            {"position": "0591227", "phone": True},
            {"position": "1190011", "phone": False},
        ],
        "vacancies": {"0590107": 1, "1190011": 1},
    }


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_state():
    """Reset config and observability singletons between tests."""
    reset_config()
    obs_reset()
    yield
    obs_reset()
    reset_config()


@pytest.fixture
def registry() -> CorrectionRegistry:
    return make_registry()


@pytest.fixture
def school(registry) -> Record:
    return Record(registry, school_data(), record_id="school-1")


@pytest.fixture
def store(registry) -> RecordStore:
    """Two schools; the second only teaches at night."""
    store = RecordStore(registry)
    store.add(school_data(), record_id="school-1")
    evening = school_data()
    evening["offer"] = [course for course in evening["offer"] if course["shift"] == "night"]
    store.add(evening, record_id="school-2")
    return store
