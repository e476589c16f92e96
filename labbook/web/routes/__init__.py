"""LabBook Web Route Modules.

Each module exports a ``router`` (APIRouter instance) for one functional
area; ``labbook.web.app`` includes them.

Usage:
    from labbook.web.routes import bookings
    app.include_router(bookings.router)
"""

from labbook.web.routes import (
    admin_bookings,
    auth,
    billing,
    bookings,
    documents,
    health,
    jobs,
    modifications,
    samples,
)

__all__ = [
    "auth",
    "bookings",
    "admin_bookings",
    "documents",
    "billing",
    "samples",
    "modifications",
    "jobs",
    "health",
]
