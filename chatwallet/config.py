import os

from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Ensure we pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.telegram_bot_token:
            fallback = os.getenv("TELEGRAM_TOKEN")
            if fallback:
                object.__setattr__(self, "telegram_bot_token", fallback)
        if not self.hedera_operator_id:
            fallback = os.getenv("MY_ACCOUNT_ID")
            if fallback:
                object.__setattr__(self, "hedera_operator_id", fallback)
        if not self.hedera_operator_key:
            fallback = os.getenv("MY_PRIVATE_KEY")
            if fallback:
                object.__setattr__(self, "hedera_operator_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    request_timeout_seconds: int = Field(default=30, description="Timeout for outbound HTTP calls")

    # Telegram Transport
    telegram_bot_token: str = Field(
        default="",
        description="Bot API token issued by BotFather",
        validation_alias=AliasChoices("telegram_bot_token", "TELEGRAM_BOT_TOKEN"),
    )
    telegram_api_base_url: str = Field(
        default="https://api.telegram.org",
        description="Base URL of the Telegram Bot API",
    )
    telegram_webhook_secret: str = Field(
        default="",
        description="Shared secret expected in X-Telegram-Bot-Api-Secret-Token",
    )
    telegram_use_polling: bool = Field(
        default=True,
        description="Run the long-polling loop alongside FastAPI instead of relying on webhooks",
    )
    telegram_poll_timeout_seconds: int = Field(
        default=30,
        ge=0,
        description="Long-poll timeout passed to getUpdates",
    )

    # Ledger
    hedera_network: str = Field(default="mainnet", description="Hedera network name")
    hedera_operator_id: str = Field(default="", description="Account that pays for wallet creation")
    hedera_operator_key: str = Field(default="", description="Private key of the operator account")
    mirror_node_url: str = Field(
        default="https://mainnet-public.mirrornode.hedera.com",
        description="Mirror node REST endpoint used for balance queries",
    )
    new_account_initial_balance: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="HBAR funded into freshly created user accounts",
    )

    # Price Oracle
    price_oracle_url: str = Field(
        default="https://api.hashpack.app/prices",
        description="Endpoint returning the priced token listing",
    )
    price_oracle_network: str = Field(default="mainnet", description="Network sent to the price oracle")

    # DEX / Swap
    native_asset_id: str = Field(
        default="0.0.1456986",
        description="Wrapped native token used as price reference and swap path endpoint",
    )
    native_symbol: str = Field(default="HBAR", description="Display ticker of the native asset")
    native_decimals: int = Field(default=8, ge=0, description="Base-unit scale of the native asset")
    pool_contract_id: str = Field(default="0.0.3045981", description="DEX router contract")
    swap_gas_limit: int = Field(default=1_120_000, description="Gas for swap calls")
    approve_gas_limit: int = Field(default=854_241, description="Gas for token approve calls")
    swap_deadline_minutes: int = Field(default=20, ge=1, description="Swap expiry window")
    min_native_balance: Decimal = Field(
        default=Decimal("0.1"),
        description="Minimum HBAR balance required to start a withdrawal or purchase",
    )
    transfer_memo: str = Field(default="Telegram Bot Withdrawal", description="Memo on withdrawals")

    # Storage
    wallet_store_path: Path = Field(
        default=BASE_DIR / ".wallets",
        description="Directory of the JSON wallet store",
    )
    redis_url: str = Field(
        default="",
        description="Redis connection string; when set wallets are stored in Redis",
    )

    # Timers
    sensitive_message_ttl_seconds: float = Field(
        default=300,
        ge=0,
        description="Seconds before an exported key document is removed from the chat",
    )
    confirmation_replay_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="How long an executed confirmation button is remembered",
    )

    @property
    def has_telegram_token(self) -> bool:
        return bool(self.telegram_bot_token)

    @property
    def has_operator(self) -> bool:
        return bool(self.hedera_operator_id and self.hedera_operator_key)


# Global settings instance
settings = Settings()
