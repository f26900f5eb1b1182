"""
grove.api.routes.profile — Member profile & level endpoints
============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from grove.api.deps import get_config, get_current_identity, get_engine
from grove.config import GroveConfig
from grove.database.models import UserProfile
from grove.engine.identity import Identity
from grove.engine.levels import (
    KNOWN_CAPABILITIES,
    LevelTier,
    has_capability,
    progress_to_next_level,
)
from grove.services import profile_service

router = APIRouter(tags=["profile"])


def _tier_dict(tier: LevelTier) -> dict:
    return {
        "level": tier.level.value,
        "min_points": tier.min_points,
        "display_name": tier.display_name,
        "icon": tier.icon,
        "unlocks": list(tier.unlocks),
        "capabilities": sorted(tier.capabilities),
    }


def _profile_dict(profile: UserProfile, cfg: GroveConfig) -> dict:
    stats = profile_service.profile_stats(profile)
    tier = cfg.level_table.tier_for_level(profile.level or "")
    return {
        "uid": profile.uid,
        "email": profile.email,
        "display_name": profile.display_name,
        "photo_url": profile.photo_url,
        "role": profile.role,
        "level": _tier_dict(tier) if tier else {"level": profile.level},
        "progress": progress_to_next_level(stats, cfg.level_table),
        "capabilities": sorted(
            cap for cap in KNOWN_CAPABILITIES
            if has_capability(profile, cap, cfg.level_table)
        ),
        "stats": profile.stat_values(),
        "is_blocked": bool(profile.is_blocked),
        "blocked_reason": profile.blocked_reason,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
        "last_active": profile.last_active.isoformat() if profile.last_active else None,
    }


@router.post("/profile/sync")
def sync_profile(
    identity: Identity = Depends(get_current_identity),
    engine=Depends(get_engine),
    cfg: GroveConfig = Depends(get_config),
):
    """Create or repair the caller's profile.  Called after every sign-in."""
    profile = profile_service.ensure_profile(
        engine,
        identity,
        level_table=cfg.level_table,
        placeholder_prefix=cfg.placeholder_prefix,
        retry=cfg.retry,
    )
    return _profile_dict(profile, cfg)


@router.get("/profile/me")
def my_profile(
    identity: Identity = Depends(get_current_identity),
    engine=Depends(get_engine),
    cfg: GroveConfig = Depends(get_config),
):
    profile = profile_service.get_profile(engine, identity.uid)
    return _profile_dict(profile, cfg)


@router.get("/levels")
def list_levels(cfg: GroveConfig = Depends(get_config)):
    return {"levels": [_tier_dict(tier) for tier in cfg.level_table]}
