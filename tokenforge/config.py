# config.py (everything the service reads from .env / the environment)

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from dotenv import load_dotenv

from .backoff import BackoffPolicy

# --- Load Secret Environment Variables ---
load_dotenv()

DEFAULT_RPC_URLS = [
    "https://api.mainnet-beta.solana.com",
    "https://solana-api.projectserum.com",
    "https://solana.public-rpc.com",
    "https://api.metaplex.solana.com",
]
DEFAULT_FEE_RECIPIENT = "BeEbsaq4dKfzZQBK6zet4wj8UJCTF9zzU7QLgWpERqBg"
LAMPORTS_PER_SOL = 1_000_000_000


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _list(name: str) -> List[str]:
    value = os.getenv(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


def _rpc_urls() -> List[str]:
    urls = _list("SOLANA_RPC_URLS") or list(DEFAULT_RPC_URLS)
    alchemy_key = os.getenv("ALCHEMY_API_KEY")
    if alchemy_key:
        urls.insert(1, f"https://solana-mainnet.g.alchemy.com/v2/{alchemy_key}")
    return urls


@dataclass
class Settings:
    rpc_urls: List[str] = field(default_factory=lambda: list(DEFAULT_RPC_URLS))
    rpc_timeout: float = 25.0
    # pause between falling back from one endpoint to the next
    fallback_backoff: BackoffPolicy = field(
        default_factory=lambda: BackoffPolicy(base_delay=1.0, multiplier=1.0, max_delay=1.0, max_attempts=1)
    )

    pinata_api_key: Optional[str] = None
    pinata_secret_api_key: Optional[str] = None
    pinata_api_url: str = "https://api.pinata.cloud"
    pinata_gateway: str = "https://gateway.pinata.cloud"
    upload_timeout: float = 25.0

    fee_sol: Decimal = Decimal("0.3")
    fee_recipient: str = DEFAULT_FEE_RECIPIENT
    fee_tolerance: Decimal = Decimal("0.001")
    fee_required: bool = False
    verify_backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    rate_limit_requests: int = 10
    rate_limit_window: float = 60.0

    database_url: str = "sqlite:///tokenforge.db"
    dev_mode: bool = False
    log_level: str = "INFO"

    @property
    def fee_lamports(self) -> int:
        return int(self.fee_sol * LAMPORTS_PER_SOL)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            rpc_urls=_rpc_urls(),
            rpc_timeout=float(os.getenv("RPC_TIMEOUT", "25")),
            pinata_api_key=os.getenv("PINATA_API_KEY"),
            pinata_secret_api_key=os.getenv("PINATA_SECRET_API_KEY"),
            pinata_api_url=os.getenv("PINATA_API_URL", "https://api.pinata.cloud"),
            pinata_gateway=os.getenv("PINATA_GATEWAY", "https://gateway.pinata.cloud"),
            upload_timeout=float(os.getenv("UPLOAD_TIMEOUT", "25")),
            fee_sol=Decimal(os.getenv("FEE_SOL", "0.3")),
            fee_recipient=os.getenv("FEE_RECIPIENT_ADDRESS", DEFAULT_FEE_RECIPIENT),
            fee_tolerance=Decimal(os.getenv("FEE_TOLERANCE", "0.001")),
            fee_required=_flag("FEE_REQUIRED"),
            verify_backoff=BackoffPolicy(
                base_delay=float(os.getenv("VERIFY_BASE_DELAY", "2")),
                multiplier=float(os.getenv("VERIFY_MULTIPLIER", "1.2")),
                max_delay=float(os.getenv("VERIFY_MAX_DELAY", "8")),
                max_attempts=int(os.getenv("VERIFY_MAX_ATTEMPTS", "20")),
            ),
            rate_limit_requests=int(os.getenv("RATE_LIMIT_REQUESTS", "10")),
            rate_limit_window=float(os.getenv("RATE_LIMIT_WINDOW", "60")),
            database_url=os.getenv("DATABASE_URL", "sqlite:///tokenforge.db"),
            dev_mode=_flag("DEV_MODE"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
