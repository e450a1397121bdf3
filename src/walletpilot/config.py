"""
Runtime settings for popup handling.

Defaults mirror the timings observed to be reliable against extension
popups on CI. Every field can be overridden through WALLETPILOT_* environment
variables (optionally loaded from a .env file).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from walletpilot.driver import ViewportSize

ENV_PREFIX = "WALLETPILOT_"

DEFAULT_VIEWPORT: ViewportSize = {"width": 360, "height": 580}


class PopupSettings(BaseModel):
    """Timeouts, poll intervals and viewport used by popup sessions."""

    page_timeout_ms: int = Field(default=15000, gt=0, description="Max wait for a popup to appear")
    poll_interval_ms: int = Field(default=300, gt=0, description="Re-scan interval of open pages")
    classify_timeout_ms: int = Field(default=15000, gt=0, description="Global classification deadline")
    classify_poll_interval_ms: int = Field(default=500, gt=0, description="Pause between classification sweeps")
    classify_settle_ms: int = Field(default=500, ge=0, description="Render grace before classifying")
    stale_settle_ms: int = Field(default=1000, ge=0, description="Wait for a stale popup to detach")
    close_wait_timeout_ms: int = Field(default=5000, ge=0, description="Max wait for a popup to close after an action")
    load_state: str = Field(default="domcontentloaded", description="Load state awaited after resolution")
    viewport: dict[str, int] | None = Field(
        default_factory=lambda: dict(DEFAULT_VIEWPORT),
        description="Viewport applied to resolved popups",
    )

    @field_validator("viewport")
    @classmethod
    def validate_viewport(cls, v: dict[str, int] | None) -> dict[str, int] | None:
        """Viewport needs positive width and height."""
        if v is None:
            return v
        if set(v) != {"width", "height"} or min(v.values()) <= 0:
            raise ValueError(f"viewport needs positive width and height, got {v}")
        return v

    @model_validator(mode="after")
    def check_intervals(self) -> "PopupSettings":
        """Poll intervals must fit inside their timeouts."""
        if self.poll_interval_ms > self.page_timeout_ms:
            raise ValueError("poll_interval_ms must not exceed page_timeout_ms")
        if self.classify_poll_interval_ms > self.classify_timeout_ms:
            raise ValueError("classify_poll_interval_ms must not exceed classify_timeout_ms")
        return self

    @property
    def viewport_size(self) -> ViewportSize | None:
        """Viewport as the driver expects it."""
        if self.viewport is None:
            return None
        return ViewportSize(width=self.viewport["width"], height=self.viewport["height"])

    @classmethod
    def from_env(cls, env_file: str | Path | None = None, **overrides: Any) -> "PopupSettings":
        """
        Build settings from WALLETPILOT_* environment variables.

        Args:
            env_file: Optional .env file to load first (existing env wins)
            **overrides: Explicit values taking precedence over the environment

        Returns:
            Validated settings
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        values: dict[str, Any] = {}
        for name in cls.model_fields:
            if name == "viewport":
                continue
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        width = os.environ.get(f"{ENV_PREFIX}VIEWPORT_WIDTH")
        height = os.environ.get(f"{ENV_PREFIX}VIEWPORT_HEIGHT")
        if width and height:
            values["viewport"] = {"width": int(width), "height": int(height)}

        values.update(overrides)
        return cls(**values)
