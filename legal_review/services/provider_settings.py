"""
Typed access to the provider settings stored in the settings table.

Only keys of schemas.SettingKey are accepted. Values that are unset fall back to
the defaults from legal_review.config.Settings (Ollama URL and model) or to the
adapter's own default model.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from legal_review import crud
from legal_review.config import get_settings
from legal_review.errors import ValidationError
from legal_review.schemas import AIProvider, ProviderSettings, SettingKey
from legal_review.services.openai_client import clear_client_cache

logger = logging.getLogger(__name__)


def parse_setting_key(key: str) -> SettingKey:
    try:
        return SettingKey(key)
    except ValueError:
        raise ValidationError(f"Unknown setting: {key}") from None


def get_setting(db: Session, key: str) -> Optional[str]:
    """Return the stored value of a recognized setting, or None if unset."""
    return crud.get_setting(db, parse_setting_key(key).value)


def set_setting(db: Session, key: str, value: str) -> None:
    """
    Store a setting value.

    Raises:
        ValidationError: For unknown keys or an unknown ai_provider value
    """
    setting_key = parse_setting_key(key)
    value = value.strip()

    if setting_key == SettingKey.AI_PROVIDER:
        try:
            AIProvider(value)
        except ValueError:
            raise ValidationError(f"Unknown AI provider: {value}") from None
    if setting_key == SettingKey.OPENAI_API_KEY:
        clear_client_cache()

    crud.set_setting(db, setting_key.value, value)
    logger.info(f"Setting '{setting_key.value}' updated")


def load_provider_settings(db: Session) -> ProviderSettings:
    """Merge stored settings over the configured defaults."""
    settings = get_settings()
    values = {
        SettingKey.OLLAMA_URL.value: settings.default_ollama_url,
        SettingKey.OLLAMA_MODEL.value: settings.default_ollama_model,
    }
    known_keys = {key.value for key in SettingKey}
    values.update({
        key: value
        for key, value in crud.get_all_settings(db).items()
        if key in known_keys and value
    })
    return ProviderSettings(**values)
