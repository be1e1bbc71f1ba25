"""Bot configuration via environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings


class RumbleSettings(BaseSettings):
    model_config = {"env_prefix": "RUMBLE_"}

    data_path: str = Field(default="backend/data/battle.json", min_length=1)
    log_dir: str = Field(default="backend/logs/rumble", min_length=1)
    tick_interval_seconds: float = Field(default=10, gt=0)
    public_join_timeout_seconds: float = Field(default=600, gt=0)  # 10 minutes
    history_limit: int = Field(default=100, ge=1)

    # tip window: a fixed fiat value of the tip token, +-tolerance
    tip_target_usd: float = Field(default=1, gt=0)
    tip_tolerance_percent: int = Field(default=10, ge=0, lt=100)
    token_decimals: int = Field(default=18, ge=0)

    # address the admin approves as spender of the reward pool
    bot_address: str = Field(default="", max_length=128)
