"""
Application settings for BudgetFlow.

Values are read from environment variables prefixed with ``BUDGETFLOW_``
(or a local ``.env`` file) and fall back to the defaults below.
"""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ─── App ──────────────────────────────────────
    app_name: str = "BudgetFlow"
    environment: str = "development"
    log_level: str = "INFO"
    logs_dir: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "logs")

    # ─── Database ─────────────────────────────────
    database_url: str = "sqlite:///./budgetflow.db"

    # ─── Recurring transactions ───────────────────
    max_generation_steps: int = 1000  # per anchor, per generation run
    default_category_color: str = "#94a3b8"

    # ─── Listing ──────────────────────────────────
    page_size: int = 50

    model_config = {"env_file": ".env", "env_prefix": "BUDGETFLOW_", "extra": "ignore"}


settings = Settings()
