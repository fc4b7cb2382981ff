from __future__ import annotations

SESSION_CREATED = "session.created"
SESSION_UPDATED = "session.updated"
SESSION_REMOVED = "session.removed"

SESSION_EVENTS = (SESSION_CREATED, SESSION_UPDATED, SESSION_REMOVED)
