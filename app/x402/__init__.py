# app/x402/__init__.py
"""
x402 Payment Protocol Integration Module.

Gates API routes behind a prepaid RBTC balance held by the PayPerAPI
contract on Rootstock.

Key components:
- ledger: Ledger read interface, value objects and in-memory ledger model
- verifier: Concurrent on-chain balance verification
- instructions: x402 payment instructions for 402 responses
- routes: Declarative paid route table
- middleware: FastAPI middleware turning verification into 402 or pass-through
- errors: Error taxonomy shared by the gate and the ledger

Configuration is loaded from environment variables via app.core.config.
"""

__version__ = "0.1.0"
