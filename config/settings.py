"""Runtime configuration for the copy trader, loaded from env / .env."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # === Traders to copy ===
    # Comma-separated or JSON array of 0x addresses.
    USER_ADDRESSES: str = ""

    # === Own wallet ===
    PROXY_WALLET: str = ""
    PRIVATE_KEY: str = ""

    # === Polymarket ===
    CLOB_HTTP_URL: str = "https://clob.polymarket.com"
    CLOB_CHAIN_ID: int = 137
    CLOB_SIGNATURE_TYPE: int = 1  # POLY_PROXY: EOA signs for proxy wallet
    DATA_API_URL: str = "https://data-api.polymarket.com"

    # === Polygon ===
    RPC_URL: str = ""
    USDC_CONTRACT_ADDRESS: str = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"

    # === Database ===
    DATABASE_URL: str = "sqlite+aiosqlite:///data/polycopy.db"

    # === Polling ===
    FETCH_INTERVAL: float = 1.0  # seconds between activity fetches
    EXECUTOR_POLL_INTERVAL: float = 0.3  # seconds between pending-trade queries
    STATUS_INTERVAL_SECONDS: float = 30.0
    TOO_OLD_TIMESTAMP: int = 24  # hours

    # === Network ===
    REQUEST_TIMEOUT_MS: int = 10000
    NETWORK_RETRY_LIMIT: int = 3

    # === Copy strategy ===
    COPY_STRATEGY: str = ""
    COPY_SIZE: float = 10.0
    MAX_ORDER_SIZE_USD: float = 100.0
    MIN_ORDER_SIZE_USD: float = 1.0
    BALANCE_SAFETY_BUFFER: float = 0.99
    # Legacy: COPY_PERCENTAGE * TRADE_MULTIPLIER when COPY_STRATEGY is unset.
    COPY_PERCENTAGE: float | None = None
    TRADE_MULTIPLIER: float = 1.0

    # === Execution ===
    RETRY_LIMIT: int = 3
    MIN_ORDER_SIZE_TOKENS: float = 1.0

    # === Trade aggregation ===
    TRADE_AGGREGATION_ENABLED: bool = False
    TRADE_AGGREGATION_WINDOW_SECONDS: float = 300.0
    TRADE_AGGREGATION_MIN_TOTAL_USD: float = 1.0

    model_config = {"env_file": ".env", "extra": "ignore"}
