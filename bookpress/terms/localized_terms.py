import logging
from typing import NamedTuple

from ..resources.loader import load_terms_json


log = logging.getLogger("bookpress")


class Term(NamedTuple):
    """Represents a term with English, French, German and Spanish names."""
    en: str
    fr: str = ''
    de: str = ''
    es: str = ''


class LocalizedTerms:
    """
    A wrapper class for translatable text. Loads available translations from json.
    Instances are initialized with a lang parameter and use get_term() methods.
    """
    _HEADINGS: dict[str, Term] = {}

    @staticmethod
    def _get_json_data(filename: str) -> dict[str, Term]:
        """Parses json data and returns a dict of {key: Term}."""
        data = load_terms_json(filename)
        return {k: Term(**v) for k, v in data.items()}


    @classmethod
    def load_terms(cls):
        """Loads the terms once; instances do it lazily if it wasn't done."""
        cls._HEADINGS = cls._get_json_data("headings.json")


    def __init__(self, lang: str = 'en', default_lang: str = 'en'):
        """Pass lang=metadata.lang. Default_lang is used as a fallback in getters."""
        # 'fr-CA' -> 'fr'
        lang = (lang or default_lang).split('-')[0].split('_')[0].lower()
        if lang not in Term._fields:
            log.warning(f"Unsupported book language: '{lang}'. Must be one of {Term._fields}. Falling back to [{default_lang}].")
            lang = default_lang
        self.lang = lang
        self.default_lang = default_lang    # used as a fallback in getters

        if not self.__class__._HEADINGS:
            log.debug("[LocalizedTerms] Missing terms. Loading from file.")
            self.__class__.load_terms()


    def _get_translation(self, dictionary, key, default='') -> str:
        """General method to fetch a term from a dictionary with language fallback."""
        term = dictionary.get(key)
        if not term:
            return default

        translation = getattr(term, self.lang, None)

        # Fall back to default lang if requested lang doesn't have a translation
        if not translation:
            translation = getattr(term, self.default_lang, default)

        return translation


    def get_heading(self, key, default='') -> str:
        """Get a heading / label translation."""
        return self._get_translation(self.__class__._HEADINGS, key, default)
