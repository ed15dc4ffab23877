"""
app/translation package marker.
"""

from app.translation.local_names import (
    LocalNameDictionary,
    LocalNameDictionaryError,
    LocalNameTranslator,
    TranslationResult,
    load_local_name_dictionary,
)

__all__ = [
    "LocalNameDictionary",
    "LocalNameDictionaryError",
    "LocalNameTranslator",
    "TranslationResult",
    "load_local_name_dictionary",
]
