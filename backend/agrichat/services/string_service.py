# /agrichat/services/string_service.py

import logging
from typing import Any, Dict, Optional

from agrichat.config import strings as default_strings

logger = logging.getLogger(__name__)


class StringService:
    def __init__(self, translations: Optional[Dict[str, Dict[str, str]]] = None):
        self._translations = translations or default_strings.TRANSLATIONS
        logger.info("StringService initialized.")

    def translate(self, locale: Optional[str], key: str, **params: Any) -> str:
        """
        Looks up `key` for the locale, then in English, then returns the key
        itself. Missing placeholders leave the template untouched.
        """
        table = self._translations.get(locale or "en") or {}
        template = table.get(key) or self._translations.get("en", {}).get(key) or key
        if not params:
            return template
        try:
            return template.format(**params)
        except (KeyError, IndexError, ValueError):
            logger.warning(f"Could not format string '{key}' for locale '{locale}'")
            return template

    def supports(self, locale: str) -> bool:
        return locale in self._translations


# Globally accessible instance
string_service = StringService()
