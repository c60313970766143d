"""Application configuration via environment variables."""

from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./wallet_engine.db"
    log_level: str = "INFO"

    # Outbound provider calls
    provider_timeout_seconds: float = 30.0

    # Charge behaviour when initiate fails with a network error:
    #   "fail"    -> return FAILED, nothing persisted
    #   "pending" -> persist a PENDING placeholder before calling the provider
    charge_network_error_policy: Literal["fail", "pending"] = "fail"

    # Reconciliation scheduler
    scheduler_enabled: bool = True
    scheduler_tick_seconds: float = 10.0
    scheduler_min_age_seconds: int = 20
    scheduler_page_size: int = 50
    retry_schedule: list[int] = [20, 40, 120, 300, 600]
    recover_attempts_from_elapsed: bool = True

    # Easypaisa (MA) credentials
    easypaisa_base_url: str = "https://easypay.easypaisa.com.pk"
    easypaisa_username: Optional[str] = None
    easypaisa_password: Optional[str] = None
    easypaisa_store_id: Optional[str] = None
    easypaisa_account_num: Optional[str] = None
    easypaisa_default_email: str = "noreply@mypay.mx"

    # JazzCash (MWALLET) credentials
    jazzcash_base_url: str = "https://payments.jazzcash.com.pk"
    jazzcash_merchant_id: Optional[str] = None
    jazzcash_password: Optional[str] = None
    jazzcash_integrity_salt: Optional[str] = None
    jazzcash_return_url: str = "https://wallets.mycodigital.io/api/v1/jazzcash/callback"

    # Local mock provider
    mock_provider_enabled: bool = True
    mock_failure_rate: float = 0.05  # 5% simulated failure rate
    mock_latency_ms: int = 100  # Simulated provider latency
    mock_settle_rate: float = 0.7  # Chance an inquiry reports PAID

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
