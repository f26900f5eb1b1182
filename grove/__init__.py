"""
Grove — User Progression & Moderation Audit Engine
===================================================
The core of a community Q&A site: derives member levels from accumulated
activity, records every privileged moderation action as a write-once audit
entry, and tells affected members what happened to them.

Package layout::

    grove/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Action labels + notification templates
    ├── errors.py          # Error taxonomy shared by services and API
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session + error translation
    │   ├── models.py      # ORM models (users, admin_actions, notifications)
    │   └── seed.py        # Seed-administrator grants
    ├── engine/
    │   ├── levels.py      # Level table + pure level resolver
    │   ├── permissions.py # Role order + action access policy
    │   ├── calendar.py    # Hebrew / Gregorian / relative-time formatting
    │   └── identity.py    # Authenticated caller envelope
    ├── services/
    │   ├── profile_service.py      # ensure_profile + atomic stat increments
    │   ├── audit_service.py        # record_action (audit + notify + apply)
    │   ├── notification_service.py # notify / mark_read / listing
    │   ├── audit_query_service.py  # Lazy filtered audit log reads
    │   └── retry.py                # Bounded backoff for transient failures
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT identity + injected collaborators
        └── routes/        # profile, admin, notifications
"""

__version__ = "0.1.0"
