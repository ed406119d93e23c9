"""
Household Push Dispatch: Application Package
============================================

What: Server-side push-notification fan-out for a shared household photo app.
How:  A new photo or chat message triggers POST /dispatch; the service resolves
      the other household members, mints an FCM access token from a service
      account, and delivers one notification per device token.

Architecture Note:
    ┌─────────────────────────────────────┐
    │         Routes (HTTP triggers)      │  ← parse input, map errors
    ├─────────────────────────────────────┤
    │   Services (resolve, mint, send)    │  ← dispatch pipeline
    ├─────────────────────────────────────┤
    │     Models & Schemas (Data)         │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │       Database (Persistence)        │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Services never read settings for secrets directly; credentials arrive as
    an immutable DeliveryProtocol value built once at startup.
"""

__version__ = "1.0.0"
