"""Configuration management for Price Warden."""

from pathlib import Path
from typing import Annotated

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Load .env file at import time
load_dotenv()


class Selectors(BaseModel):
    """Locator descriptors for the plans page, its checkout modal and the cart."""

    ready: str | None = None
    tabs: str = '[data-name="segments"] [role="tab"]'
    tab_panel: str = '.is-Selected[role="tabpanel"]'
    cards: str = ":is(plans-card, .plans-card)"
    product_name: str = "h3"
    card_price: str = 'span[data-wcs-type="price"]'
    checkout_link: str = ".dexter-Cta .spectrum-Button--cta"
    checkout_modal: str = ":is(div.ReactModalPortal .commerce-context-container, div.iframe iframe)"
    price_options: str = '.subscription-panel-offer-price [data-wcs-type="price"]'
    selected_price_option: str = 'input[checked] + label [data-wcs-type="price"]'
    continue_button: str = ".spectrum-Button--cta"
    modal_close: str = "svg.close-button-modal, .dexter-CloseButton"
    cart_subtotal: str | None = (
        '[data-testid="cart-totals-subtotals-row"] [data-testid="price-full-display"]'
    )
    cart_total: str | None = (
        '[class*="CartTotals__cart-totals-total-price"] [data-testid="price-full-display"]'
    )
    cart_total_next: str | None = (
        '[data-testid="cart-totals-upcoming-dueNext-total"] [data-testid="price-full-display"]'
    )


class Timeouts(BaseModel):
    """Bounded waits, in milliseconds unless noted."""

    navigation_ms: int = 20000
    element_ms: int = 10000
    click_ms: int = 5000
    new_window_ms: int = 5000
    cart_ms: int = 20000
    settle_ms: int = 1000
    checkout_settle_ms: int = 5000
    load_attempts: int = 3
    load_backoff_s: float = 1.0


class PageHealthConfig(BaseModel):
    """Page-load health check configuration."""

    ignored_errors_file: Path | None = None
    known_issues_file: Path | None = None
    max_console_errors: int = 2
    skip_fragments: list[str] = Field(default_factory=lambda: ["#open-jarvis-chat"])
    request_delay_ms: int = 0


class LangfuseConfig(BaseModel):
    """Langfuse observability configuration."""

    enabled: bool = False
    public_key: str | None = None
    secret_key: str | None = None


class Config(BaseSettings):
    """Main configuration for Price Warden."""

    model_config = SettingsConfigDict(
        env_prefix="PRICE_WARDEN_",
        env_nested_delimiter="__",
    )

    # Target
    target_url: str = "https://www.adobe.com/uk/creativecloud/plans.html"
    country: str | None = None
    tabs: Annotated[list[str] | None, NoDecode] = None
    cards: Annotated[list[str] | None, NoDecode] = None
    expected_tabs: int | None = None
    modal_source_prefix: str | None = None

    # Run behaviour
    retries: int = 2
    state_dir: Path = Path("test-results/.test-state")
    report_dir: Path = Path("test-results/reports")
    screenshot_dir: Path | None = None

    # Browser
    headless: bool = True
    user_agent_suffix: str = ""
    geo_url: str | None = "https://geo2.adobe.com/json/"
    blocked_urls: list[str] = Field(
        default_factory=lambda: ["https://client.messaging.adobe.com/**"]
    )

    # Sub-configurations
    selectors: Selectors = Field(default_factory=Selectors)
    timeouts: Timeouts = Field(default_factory=Timeouts)
    page_health: PageHealthConfig = Field(default_factory=PageHealthConfig)
    langfuse: LangfuseConfig = Field(default_factory=LangfuseConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values read from the YAML file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("tabs", "cards", mode="before")
    @classmethod
    def _split_selection(cls, value):
        """Accept "Individuals,Business" as well as a YAML list."""
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",")]
            return [item for item in items if item] or None
        return value


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file and environment variables."""
    config_data: dict = {}

    # Try to find config file
    if config_path is None:
        for name in ["price_warden.yaml", "price_warden.yml", ".price_warden.yaml"]:
            if Path(name).exists():
                config_path = Path(name)
                break

    # Load from YAML if exists
    if config_path and config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if raw and "price_warden" in raw:
                config_data = raw["price_warden"]
            elif raw:
                config_data = raw

    # Environment variables override YAML
    return Config(**config_data)
