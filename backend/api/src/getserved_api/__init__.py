"""HTTP layer for the GetServed escrow backend."""
