"""API routes package.

Routers are organized by domain and registered in main.py with the /api prefix:

- bookings: create and read bookings
- customers: payment history
- payments: escrow handlers (initiate, verify, mark-complete, release, refund)
- webhooks: signed gateway callbacks
- providers: identity verification gate and earnings
"""

from getserved_api.routes.bookings import router as bookings_router
from getserved_api.routes.customers import router as customers_router
from getserved_api.routes.payments import router as payments_router
from getserved_api.routes.providers import router as providers_router
from getserved_api.routes.webhooks import router as webhooks_router

__all__ = [
    "bookings_router",
    "customers_router",
    "payments_router",
    "providers_router",
    "webhooks_router",
]
