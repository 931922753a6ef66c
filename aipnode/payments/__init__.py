"""Lightning payment bridges (Coinos wallet, L402-style task payments)."""

from .lightning import CoinosClient
from .l402 import L402Bridge

__all__ = ["CoinosClient", "L402Bridge"]
