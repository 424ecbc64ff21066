"""API-specific request/response models.

Domain models (Booking, ProviderVerification, ...) live in getserved.models
and are reused here where the response carries them whole.

Modules:
- common: request base class and success wrappers
- bookings: booking create/read models
- payments: escrow handler request/response models
- customers: payment history models
- providers: verification and earnings models
"""

__all__: list[str] = []
