"""
tests/test_profile_service.py — Profile Reconciler & Stat Accumulation
=======================================================================
Service-level tests for ensure_profile() and increment_stats() against
SQLite: creation, repair of incomplete rows, idempotency, placeholder
names, atomic increments and level re-derivation.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from conftest import add_profile
from grove.database.models import UserLevel, UserProfile, UserRole
from grove.engine.calendar import ensure_utc
from grove.engine.identity import DISPLAY_NAME_MAX_LENGTH, Identity
from grove.errors import NotFoundError, ValidationError
from grove.services import profile_service
from grove.services.retry import RetryPolicy

T0 = datetime(2024, 1, 5, 10, 0, tzinfo=UTC)


def _columns(profile: UserProfile) -> dict:
    # SQLite hands datetimes back naive
    def norm(value):
        return ensure_utc(value) if isinstance(value, datetime) else value

    return {
        c.name: norm(getattr(profile, c.key))
        for c in UserProfile.__table__.columns
        if c.name != "last_active"
    }


class TestEnsureProfileCreate:
    def test_creates_complete_profile(self, db_engine):
        identity = Identity(uid="u1", email="dana@example.com", display_name="Dana")
        profile = profile_service.ensure_profile(db_engine, identity, now=T0)

        assert profile.uid == "u1"
        assert profile.display_name == "Dana"
        assert profile.role == UserRole.USER
        assert profile.level == UserLevel.SEEDLING
        assert profile.is_blocked is False
        assert profile.stat_values() == dict.fromkeys(profile.stat_values(), 0)
        assert profile.created_at == T0

    def test_placeholder_from_email(self, db_engine):
        profile = profile_service.ensure_profile(
            db_engine, Identity(uid="u2", email="noa@example.com"),
        )
        assert profile.display_name == "noa"

    def test_placeholder_without_name_or_email(self, db_engine):
        profile = profile_service.ensure_profile(
            db_engine, Identity(uid="abcdef1234567"), placeholder_prefix="guest",
        )
        assert profile.display_name == "guest-abcdef12"
        assert profile.email == ""

    def test_long_provider_name_is_cut_to_column_width(self, db_engine):
        long_name = "Dana " + "x" * 295
        profile = profile_service.ensure_profile(
            db_engine, Identity(uid="u3", display_name=long_name),
        )
        assert profile.display_name == long_name[:DISPLAY_NAME_MAX_LENGTH]
        assert profile_service.get_profile(db_engine, "u3").display_name == profile.display_name

    def test_identity_requires_uid(self):
        with pytest.raises(ValueError):
            Identity(uid="")


class TestEnsureProfileIdempotent:
    def test_second_call_only_touches_last_active(self, db_engine):
        identity = Identity(uid="u1", email="dana@example.com", display_name="Dana")
        first = profile_service.ensure_profile(db_engine, identity, now=T0)
        later = T0 + timedelta(hours=3)
        second = profile_service.ensure_profile(db_engine, identity, now=later)

        assert _columns(first) == _columns(second)
        assert second.last_active == later

    def test_never_overwrites_populated_fields(self, db_engine):
        add_profile(db_engine, "u1", display_name="Original", email="orig@example.com")
        profile = profile_service.ensure_profile(
            db_engine, Identity(uid="u1", email="new@example.com", display_name="New"),
        )
        assert profile.display_name == "Original"
        assert profile.email == "orig@example.com"


class TestEnsureProfileRepair:
    def test_fills_missing_fields_and_stale_level(self, db_engine):
        with Session(db_engine) as session:
            # Row from an older schema: no role, no level, partial stats
            session.add(UserProfile(uid="old", display_name="Veteran", points=150))
            session.commit()

        profile = profile_service.ensure_profile(
            db_engine, Identity(uid="old", email="vet@example.com", display_name="X"),
        )
        assert profile.display_name == "Veteran"
        assert profile.email == "vet@example.com"
        assert profile.role == UserRole.USER
        assert profile.points == 150
        assert profile.flowers == 0
        assert profile.level == UserLevel.TRUNK

    def test_keeps_elevated_role(self, db_engine):
        add_profile(db_engine, "boss", UserRole.ADMIN)
        profile = profile_service.ensure_profile(db_engine, Identity(uid="boss"))
        assert profile.role == UserRole.ADMIN


class TestGetProfile:
    def test_missing_profile(self, db_engine):
        with pytest.raises(NotFoundError):
            profile_service.get_profile(db_engine, "ghost")


class TestIncrementStats:
    def test_adds_deltas(self, db_engine):
        add_profile(db_engine, "u1", points=10)
        change = profile_service.increment_stats(
            db_engine, "u1", points=5, correct_answers=1,
        )
        assert change.stats.points == 15
        assert change.stats.correct_answers == 1
        assert not change.leveled_up

    def test_level_up(self, db_engine):
        add_profile(db_engine, "u1", points=95)
        change = profile_service.increment_stats(db_engine, "u1", points=10)
        assert change.old_level == UserLevel.SEEDLING
        assert change.new_level == UserLevel.TRUNK
        assert change.leveled_up
        assert profile_service.get_profile(db_engine, "u1").level == UserLevel.TRUNK

    def test_null_counters_treated_as_zero(self, db_engine):
        with Session(db_engine) as session:
            session.add(UserProfile(uid="old", level_pinned=False))
            session.commit()
        change = profile_service.increment_stats(db_engine, "old", flowers=2)
        assert change.stats.flowers == 2
        assert change.new_level == UserLevel.SEEDLING

    def test_pinned_level_not_rederived(self, db_engine):
        with Session(db_engine) as session:
            session.add(UserProfile(uid="seed", level="oak", level_pinned=True, points=0))
            session.commit()
        change = profile_service.increment_stats(db_engine, "seed", points=1)
        assert change.new_level == UserLevel.OAK
        assert not change.leveled_up

    def test_reset_streak(self, db_engine):
        add_profile(db_engine, "u1")
        profile_service.increment_stats(db_engine, "u1", streak=4)
        change = profile_service.increment_stats(db_engine, "u1", reset_streak=True)
        assert change.stats.streak == 0

    def test_negative_delta_rejected(self, db_engine):
        add_profile(db_engine, "u1", points=10)
        with pytest.raises(ValidationError, match="negative"):
            profile_service.increment_stats(db_engine, "u1", points=-5)
        assert profile_service.get_profile(db_engine, "u1").points == 10

    def test_unknown_stat_rejected(self, db_engine):
        with pytest.raises(ValidationError, match="Unknown stats"):
            profile_service.increment_stats(db_engine, "u1", karma=1)

    def test_requires_a_delta(self, db_engine):
        with pytest.raises(ValidationError):
            profile_service.increment_stats(db_engine, "u1")

    def test_missing_profile(self, db_engine):
        with pytest.raises(NotFoundError):
            profile_service.increment_stats(db_engine, "ghost", points=1)


class TestConcurrentIncrements:
    def test_no_lost_updates(self, file_engine):
        add_profile(file_engine, "u1")
        retry = RetryPolicy(max_attempts=10, base_backoff=0.01, max_backoff=0.1)
        errors: list[Exception] = []

        def worker():
            try:
                for _ in range(5):
                    profile_service.increment_stats(file_engine, "u1", points=1, retry=retry)
            except Exception as exc:  # surfaced by the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert profile_service.get_profile(file_engine, "u1").points == 20
