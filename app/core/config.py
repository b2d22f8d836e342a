# app/core/config.py
from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl # AnyHttpUrl stays in pydantic core
from functools import lru_cache
from typing import Literal
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "x402 Pay-Per-API Server"
    PORT: int = 3000

    # Rootstock network the payment ledger lives on
    ROOTSTOCK_TESTNET_RPC_URL: AnyHttpUrl = "https://public-node.testnet.rsk.co"
    CONTRACT_ADDRESS: str = "0xa1F4D43749ABEdb6a835aF9184CD0A9c194d4C8a"
    CHAIN_ID: int = 31
    CHAIN_NAME: str = "Rootstock Testnet"
    CHAIN_CURRENCY: str = "RBTC"

    # Payment gate
    X402_ENABLED: bool = True
    X402_WALLET_HEADER: str = "x-wallet-address"
    X402_LEDGER_TIMEOUT_SECONDS: float = 10.0

    # "rpc" reads the deployed contract, "memory" runs a local ledger model
    LEDGER_BACKEND: Literal["rpc", "memory"] = "rpc"
    LEDGER_MEMORY_PRICE_WEI: int = 100_000_000_000_000  # 0.0001 RBTC
    LEDGER_OWNER_ADDRESS: str = "0x0000000000000000000000000000000000000000"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
