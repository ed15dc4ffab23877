"""
app/normalization package marker.
"""

from app.normalization.ingredient_normalizer import (
    build_ingredient_base,
    clean_ingredient_token,
    extract_primary_token,
    normalize_product_name,
    parse_ingredient_list,
    split_ingredient_base,
)

__all__ = [
    "build_ingredient_base",
    "clean_ingredient_token",
    "extract_primary_token",
    "normalize_product_name",
    "parse_ingredient_list",
    "split_ingredient_base",
]
