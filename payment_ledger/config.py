import os
from typing import Optional
from pydantic import BaseModel, Field


class LedgerSettings(BaseModel):
    log_level: str = "INFO"
    currency_symbol: str = "₹"
    fetch_timeout: float = Field(default=10.0, gt=0)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


def _split_origins(raw: Optional[str]) -> list[str]:
    if not raw:
        return ["*"]
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


def load_settings(environ: Optional[dict] = None) -> LedgerSettings:
    env = os.environ if environ is None else environ
    return LedgerSettings(
        log_level=env.get("PAYMENT_LEDGER_LOG_LEVEL", "INFO"),
        currency_symbol=env.get("PAYMENT_LEDGER_CURRENCY_SYMBOL", "₹"),
        fetch_timeout=float(env.get("PAYMENT_LEDGER_FETCH_TIMEOUT", "10")),
        cors_origins=_split_origins(env.get("PAYMENT_LEDGER_CORS_ORIGINS")),
    )
