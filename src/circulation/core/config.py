# src/circulation/core/config.py
from __future__ import annotations

import os
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CirculationPolicy(BaseModel):
    """
    Lending rules handed explicitly to the fine engine, membership ledger and
    borrow workflow. Nothing in the core reads ``settings`` directly.
    """

    model_config = ConfigDict(frozen=True)

    fine_rate_percent: Decimal = Field(default=Decimal("10"), ge=0)
    damage_fine_percent: Decimal = Field(default=Decimal("50"), ge=0, le=100)
    default_borrow_days: int = Field(default=14, gt=0)
    default_max_books: int = Field(default=5, gt=0)
    min_deposit_amount: Decimal = Field(default=Decimal("200000"), ge=0)
    card_validity_days: int = Field(default=365, gt=0)
    block_extension_with_unpaid_fines: bool = True


class Settings(BaseSettings):
    # ---- App ----
    APP_NAME: str = "Circulation API"
    APP_VERSION: str = "0.1.0"

    # ---- DB ----
    DATABASE_URL: str = (
            os.getenv("DATABASE_URL")
            or os.getenv("ASYNC_DATABASE_URL")
            or "sqlite+aiosqlite:///./circulation.db"
    )
    DB_ECHO: bool = False
    TESTING: bool = False

    # ---- Lending policy ----
    FINE_RATE_PERCENT: Decimal = Field(
        default=Decimal("10"),
        validation_alias=AliasChoices("FINE_RATE_PERCENT", "CIRCULATION_FINE_RATE_PERCENT"),
    )
    DAMAGE_FINE_PERCENT: Decimal = Field(default=Decimal("50"))
    DEFAULT_BORROW_DAYS: int = Field(
        default=14,
        validation_alias=AliasChoices("DEFAULT_BORROW_DAYS", "MAX_BORROW_DAYS"),
    )
    DEFAULT_MAX_BOOKS: int = Field(
        default=5,
        validation_alias=AliasChoices("DEFAULT_MAX_BOOKS", "MAX_BOOKS_PER_USER"),
    )
    MIN_DEPOSIT_AMOUNT: Decimal = Field(
        default=Decimal("200000"),
        validation_alias=AliasChoices("MIN_DEPOSIT_AMOUNT", "DEFAULT_DEPOSIT_AMOUNT"),
    )
    CARD_VALIDITY_DAYS: int = 365
    BLOCK_EXTENSION_WITH_UNPAID_FINES: bool = True

    # ---- Logging ----
    CIRCULATION_LOG_LEVEL: str = "INFO"

    # ---- Pydantic settings config ----
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def _check_rates(self) -> "Settings":
        if self.FINE_RATE_PERCENT < 0:
            raise ValueError("FINE_RATE_PERCENT must not be negative")
        if not (0 <= self.DAMAGE_FINE_PERCENT <= 100):
            raise ValueError("DAMAGE_FINE_PERCENT must be between 0 and 100")
        return self

    def policy(self) -> CirculationPolicy:
        return CirculationPolicy(
            fine_rate_percent=self.FINE_RATE_PERCENT,
            damage_fine_percent=self.DAMAGE_FINE_PERCENT,
            default_borrow_days=self.DEFAULT_BORROW_DAYS,
            default_max_books=self.DEFAULT_MAX_BOOKS,
            min_deposit_amount=self.MIN_DEPOSIT_AMOUNT,
            card_validity_days=self.CARD_VALIDITY_DAYS,
            block_extension_with_unpaid_fines=self.BLOCK_EXTENSION_WITH_UNPAID_FINES,
        )


settings = Settings()
__all__ = ["settings", "Settings", "CirculationPolicy"]
