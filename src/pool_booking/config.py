from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field


class Settings(BaseModel):
    reservations_table_name: str = "reservations"
    directory_table_name: str = "directory"
    notifications_table_name: str = "notifications"
    default_booking_window_days: int = Field(default=30, ge=0)
    max_transaction_attempts: int = Field(default=3, ge=1)
    requests_link_template: str = "/scopes/{owner_scope_id}/reservations/{reservation_id}"
    store_backend: Literal["dynamodb", "memory"] = "dynamodb"

    @classmethod
    def from_env(cls) -> Settings:
        env = {
            "reservations_table_name": os.environ.get("RESERVATIONS_TABLE_NAME"),
            "directory_table_name": os.environ.get("DIRECTORY_TABLE_NAME"),
            "notifications_table_name": os.environ.get("NOTIFICATIONS_TABLE_NAME"),
            "default_booking_window_days": os.environ.get("DEFAULT_BOOKING_WINDOW_DAYS"),
            "max_transaction_attempts": os.environ.get("MAX_TRANSACTION_ATTEMPTS"),
            "requests_link_template": os.environ.get("REQUESTS_LINK_TEMPLATE"),
            "store_backend": os.environ.get("STORE_BACKEND"),
        }
        return cls(**{k: v for k, v in env.items() if v is not None})
