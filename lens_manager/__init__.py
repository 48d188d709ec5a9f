"""Lens Manager - studio backend for photographers.

The API is backend-first: a React SPA talks to it over JSON.

Core concepts:
- Every business row (client, booking, invoice, schedule, gallery) belongs to
  exactly one photographer (`user_id`) and is never visible to anyone else.
- Access plans cap how many clients/bookings (and how much gallery storage)
  a photographer may create. Counts are recomputed live on every check.
- Auth is a stateless HS256 JWT issued at login/registration.

See DESIGN.md for the layout.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
