"""
CSV parser for product bulk import.

Template columns:
    Nome, Categoria, Unidade, EstoqueMinimo, Estoque_<Location_Name>...

One Estoque_ column per location, with spaces in the location name written
as underscores. English headers (name, category, unit, min_stock,
stock_<Location_Name>) are accepted as well.

Rows are validated independently: a bad row is reported and skipped, the
rest are returned for import.
"""

import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Optional, Union
import structlog

import pandas as pd

from exceptions import ImportParseError

logger = structlog.get_logger(__name__)


COLUMN_ALIASES = {
    "nome": "name",
    "name": "name",
    "categoria": "category",
    "category": "category",
    "unidade": "unit",
    "unit": "unit",
    "estoqueminimo": "min_stock",
    "estoque_minimo": "min_stock",
    "min_stock": "min_stock",
    "minstock": "min_stock",
}

STOCK_PREFIXES = ("estoque_", "stock_")

TEMPLATE_STOCK_PREFIX = "Estoque_"
TEMPLATE_COLUMNS = ["Nome", "Categoria", "Unidade", "EstoqueMinimo"]

DEFAULT_UNIT = "un"


@dataclass
class ProductImportRow:
    """Validated row ready to be created."""
    row: int
    name: str
    category_id: str
    unit: str
    min_stock: int
    initial_quantities: dict[str, int] = field(default_factory=dict)


@dataclass
class ImportRowError:
    """Single validation error for one row."""
    row: int
    field: str
    error: str
    name: Optional[str] = None


@dataclass
class ProductImportParseResult:
    """Result of parsing an import file."""
    rows: list[ProductImportRow] = field(default_factory=list)
    errors: list[ImportRowError] = field(default_factory=list)
    ignored_columns: list[str] = field(default_factory=list)
    total_rows: int = 0


# ===================
# PUBLIC API
# ===================

def location_column(location_name: str) -> str:
    """Template header for a location's opening stock."""
    return TEMPLATE_STOCK_PREFIX + re.sub(r"\s+", "_", location_name.strip())


def build_import_template(location_names: list[str]) -> str:
    """CSV template with one example row, as offered for download."""
    columns = TEMPLATE_COLUMNS + [location_column(name) for name in location_names]
    sample = {
        "Nome": "Exemplo: Parafuso sextavado 8mm",
        "Categoria": "Fixadores",
        "Unidade": DEFAULT_UNIT,
        "EstoqueMinimo": "5",
        **{location_column(name): "10" for name in location_names},
    }
    return pd.DataFrame([sample], columns=columns).to_csv(index=False)


def parse_product_import(
    file: Union[bytes, BytesIO, str],
    categories: dict[str, str],
    locations: dict[str, str],
) -> ProductImportParseResult:
    """
    Parse a product import CSV.

    Args:
        file: CSV content
        categories: Category name -> id
        locations: Location name -> id

    Returns:
        ProductImportParseResult with valid rows and per-row errors

    Raises:
        ImportParseError: Unreadable file or missing name/category columns
    """
    df = _load_csv(file)

    category_ids = {name.strip().lower(): cat_id for name, cat_id in categories.items()}
    location_ids = {_location_key(name): loc_id for name, loc_id in locations.items()}

    field_columns: dict[str, str] = {}
    stock_columns: dict[str, str] = {}
    ignored: list[str] = []
    for column in df.columns:
        key = _normalize_column(column)
        if key in COLUMN_ALIASES:
            field_columns.setdefault(COLUMN_ALIASES[key], column)
            continue
        prefix = next((p for p in STOCK_PREFIXES if key.startswith(p)), None)
        location_id = location_ids.get(_location_key(key[len(prefix):])) if prefix else None
        if location_id:
            stock_columns[column] = location_id
        else:
            ignored.append(str(column))

    missing = [f for f in ("name", "category") if f not in field_columns]
    if missing:
        raise ImportParseError(
            f"Missing required columns: {', '.join(missing)}",
            details={"columns": [str(c) for c in df.columns]}
        )

    if ignored:
        logger.warning("product_import_columns_ignored", columns=ignored)

    result = ProductImportParseResult(ignored_columns=ignored, total_rows=len(df))

    for idx, row in df.iterrows():
        # Header is line 1
        row_num = idx + 2
        row_errors: list[ImportRowError] = []

        name = _cell(row, field_columns["name"])
        category = _cell(row, field_columns["category"])

        if not name:
            row_errors.append(ImportRowError(row_num, "name", "Name is required"))
        if not category:
            row_errors.append(ImportRowError(row_num, "category", "Category is required", name or None))
            category_id = None
        else:
            category_id = category_ids.get(category.lower())
            if category_id is None:
                row_errors.append(ImportRowError(
                    row_num, "category", f"Category '{category}' not found", name or None
                ))

        min_stock = 0
        if "min_stock" in field_columns:
            raw = _cell(row, field_columns["min_stock"])
            min_stock = _parse_quantity(raw)
            if min_stock is None:
                row_errors.append(ImportRowError(
                    row_num, "min_stock", f"Invalid minimum stock: {raw}", name or None
                ))

        quantities: dict[str, int] = {}
        for column, location_id in stock_columns.items():
            raw = _cell(row, column)
            qty = _parse_quantity(raw)
            if qty is None:
                row_errors.append(ImportRowError(
                    row_num, str(column), f"Invalid quantity: {raw}", name or None
                ))
            elif qty > 0:
                quantities[location_id] = qty

        if row_errors:
            result.errors.extend(row_errors)
            continue

        unit = _cell(row, field_columns["unit"]) if "unit" in field_columns else ""
        result.rows.append(ProductImportRow(
            row=row_num,
            name=name,
            category_id=category_id,
            unit=unit or DEFAULT_UNIT,
            min_stock=min_stock,
            initial_quantities=quantities,
        ))

    logger.info(
        "product_import_parsed",
        total_rows=result.total_rows,
        valid_rows=len(result.rows),
        errors=len(result.errors)
    )

    return result


# ===================
# HELPER FUNCTIONS
# ===================

def _load_csv(file: Union[bytes, BytesIO, str]) -> pd.DataFrame:
    """Load CSV into a string DataFrame, trying encodings and separators."""
    if isinstance(file, BytesIO):
        file = file.getvalue()
    if isinstance(file, str):
        file = file.encode("utf-8")

    # Spreadsheet exports are often latin-1; utf-8-sig also strips a BOM
    last_error: Optional[Exception] = None
    fallback: Optional[pd.DataFrame] = None
    for encoding in ("utf-8-sig", "latin-1"):
        for sep in (",", ";", "\t"):
            try:
                df = pd.read_csv(BytesIO(file), sep=sep, dtype=str, encoding=encoding)
            except UnicodeDecodeError as e:
                last_error = e
                break
            except pd.errors.EmptyDataError:
                raise ImportParseError("File is empty")
            except pd.errors.ParserError as e:
                last_error = e
                continue

            if any(COLUMN_ALIASES.get(_normalize_column(c)) == "name" for c in df.columns):
                logger.debug("import_csv_loaded", encoding=encoding, separator=sep)
                return df
            if fallback is None:
                fallback = df

        if fallback is not None:
            # Decoded fine; report its columns as missing downstream
            return fallback

    raise ImportParseError(f"Could not read CSV: {last_error}")


def _normalize_column(column) -> str:
    return str(column).strip().lstrip("\ufeff").lower()


def _location_key(name: str) -> str:
    return re.sub(r"[\s_]+", "_", name.strip().lower())


def _cell(row: pd.Series, column: str) -> str:
    value = row.get(column)
    if pd.isna(value):
        return ""
    return str(value).strip()


def _parse_quantity(raw: str) -> Optional[int]:
    """Non-negative whole number; blank reads as 0, anything else is None."""
    if raw == "":
        return 0
    try:
        value = float(raw.replace(",", "."))
    except ValueError:
        return None
    if value < 0 or not value.is_integer():
        return None
    return int(value)
