"""Processing layer: HTML/text normalization and feed date parsing.

The generative composer lives in :mod:`.composer` and is imported from there
directly, since it depends on the models that use this package.
"""

from .normalize import clean_html_to_text, parse_date, replace_unicode_symbols, str_value_to_float

__all__ = [
    "clean_html_to_text",
    "parse_date",
    "replace_unicode_symbols",
    "str_value_to_float",
]
