"""
Gatehouse — Whitelist Applications for a Discord Guild
=======================================================
Members sign in with Discord, answer the guild's question set (text and
recorded audio), and admins approve, deny, or ask for revisions.  Every
decision is mirrored to Discord as a role change and a direct message.

Package layout::

    gatehouse/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Embed colours, retention defaults
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # Question, Application, Answer, OAuthState
    │   └── seed.py        # Default question catalog
    ├── services/
    │   ├── application_service.py  # Application state machine
    │   ├── catalog_service.py      # Question CRUD + reorder
    │   ├── notification_service.py # Best-effort role/DM side effects
    │   ├── discord_service.py      # Discord REST client (bot token)
    │   ├── embeds.py               # Decision DM embeds
    │   ├── audio_store.py          # Audio upload storage
    │   ├── retention_service.py    # Aged-audio sweep
    │   ├── admin_policy.py         # Who counts as an admin
    │   └── errors.py               # Service exception hierarchy
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Discord OAuth2 → JWT
        └── routes/        # Applicant, admin, and cleanup endpoints
"""

__version__ = "0.1.0"
