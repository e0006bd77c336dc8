"""
File parsers module.
"""

from parsers.product_import import (
    parse_product_import,
    build_import_template,
    location_column,
    ProductImportParseResult,
)

__all__ = [
    "parse_product_import",
    "build_import_template",
    "location_column",
    "ProductImportParseResult",
]
