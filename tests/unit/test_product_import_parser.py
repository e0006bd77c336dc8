"""
Unit tests for the product import parser.

Run: pytest tests/unit/test_product_import_parser.py -v
"""

import pytest

from parsers.product_import import (
    parse_product_import,
    build_import_template,
    location_column,
    ProductImportRow,
)
from exceptions import ImportParseError


# ===================
# FIXTURES
# ===================

@pytest.fixture
def categories():
    """Category name -> id, as registered."""
    return {"Fixadores": "cat-fix", "Adesivos": "cat-ade"}


@pytest.fixture
def locations():
    """Location name -> id, as registered."""
    return {"Main Warehouse": "loc-a", "Shop Floor": "loc-b"}


def make_csv(*lines: str) -> bytes:
    """Helper to build an in-memory CSV file."""
    return ("\n".join(lines) + "\n").encode("utf-8")


# ===================
# VALID FILE TESTS
# ===================

class TestValidFileParsing:

    def test_template_headers_parse(self, categories, locations):
        """Portuguese template headers map onto product fields and locations."""
        content = make_csv(
            "Nome,Categoria,Unidade,EstoqueMinimo,Estoque_Main_Warehouse,Estoque_Shop_Floor",
            "Parafuso sextavado,Fixadores,cx,5,10,0",
        )

        result = parse_product_import(content, categories, locations)

        assert result.errors == []
        assert result.total_rows == 1
        assert result.rows == [
            ProductImportRow(
                row=2,
                name="Parafuso sextavado",
                category_id="cat-fix",
                unit="cx",
                min_stock=5,
                initial_quantities={"loc-a": 10},
            )
        ]

    def test_english_headers_and_defaults(self, categories, locations):
        """Blank unit falls back to 'un' and blank quantities read as zero."""
        content = make_csv(
            "name,category,unit,min_stock,stock_Shop_Floor",
            "Cola branca,Adesivos,,,",
        )

        result = parse_product_import(content, categories, locations)

        row = result.rows[0]
        assert row.unit == "un"
        assert row.min_stock == 0
        assert row.initial_quantities == {}

    def test_category_matched_case_insensitively(self, categories, locations):
        content = make_csv("Nome,Categoria", "Porca,fixadores")

        result = parse_product_import(content, categories, locations)

        assert result.rows[0].category_id == "cat-fix"

    def test_semicolon_separated_file(self, categories, locations):
        content = make_csv("Nome;Categoria;Estoque_Main_Warehouse", "Porca;Fixadores;4")

        result = parse_product_import(content, categories, locations)

        assert result.rows[0].initial_quantities == {"loc-a": 4}

    def test_latin1_file(self, locations):
        content = "Nome,Categoria\nArruela,Fixações\n".encode("latin-1")

        result = parse_product_import(content, {"Fixações": "cat-fix"}, locations)

        assert result.rows[0].name == "Arruela"
        assert result.rows[0].category_id == "cat-fix"

    def test_unmatched_columns_are_ignored(self, categories, locations):
        content = make_csv("Nome,Categoria,Preco,Estoque_Attic", "Porca,Fixadores,3.50,7")

        result = parse_product_import(content, categories, locations)

        assert result.ignored_columns == ["Preco", "Estoque_Attic"]
        assert result.rows[0].initial_quantities == {}


# ===================
# ROW ERROR TESTS
# ===================

class TestRowErrors:

    def test_unknown_category_rejects_only_that_row(self, categories, locations):
        content = make_csv(
            "Nome,Categoria,Estoque_Main_Warehouse",
            "Parafuso,Fixadores,10",
            "Cola,Desconhecida,3",
            "Fita,Adesivos,2",
        )

        result = parse_product_import(content, categories, locations)

        assert [r.name for r in result.rows] == ["Parafuso", "Fita"]
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.row == 3
        assert error.field == "category"
        assert error.name == "Cola"
        assert "Desconhecida" in error.error

    def test_missing_name_and_category(self, categories, locations):
        content = make_csv("Nome,Categoria", ",Fixadores", "Porca,")

        result = parse_product_import(content, categories, locations)

        assert result.rows == []
        assert [(e.row, e.field) for e in result.errors] == [(2, "name"), (3, "category")]

    def test_invalid_quantities(self, categories, locations):
        content = make_csv(
            "Nome,Categoria,EstoqueMinimo,Estoque_Main_Warehouse",
            "Parafuso,Fixadores,1,-3",
            "Porca,Fixadores,1,2.5",
            "Arruela,Fixadores,x,abc",
            "Prego,Fixadores,2,4.0",
        )

        result = parse_product_import(content, categories, locations)

        assert [r.name for r in result.rows] == ["Prego"]
        assert result.rows[0].initial_quantities == {"loc-a": 4}
        assert [(e.row, e.field) for e in result.errors] == [
            (2, "Estoque_Main_Warehouse"),
            (3, "Estoque_Main_Warehouse"),
            (4, "min_stock"),
            (4, "Estoque_Main_Warehouse"),
        ]


# ===================
# INVALID FILE TESTS
# ===================

class TestInvalidFile:

    def test_missing_required_columns(self, categories, locations):
        content = make_csv("Produto,Categoria", "Porca,Fixadores")

        with pytest.raises(ImportParseError) as exc_info:
            parse_product_import(content, categories, locations)

        assert exc_info.value.status_code == 422
        assert "name" in exc_info.value.message

    def test_empty_file(self, categories, locations):
        with pytest.raises(ImportParseError):
            parse_product_import(b"", categories, locations)


# ===================
# TEMPLATE TESTS
# ===================

class TestTemplate:

    def test_location_column_replaces_spaces(self):
        assert location_column("Main  Warehouse ") == "Estoque_Main_Warehouse"

    def test_template_has_a_column_per_location(self, categories, locations):
        template = build_import_template(list(locations))

        header = template.splitlines()[0]
        assert header == (
            "Nome,Categoria,Unidade,EstoqueMinimo,Estoque_Main_Warehouse,Estoque_Shop_Floor"
        )

        # The example row is itself importable
        result = parse_product_import(template, categories, locations)
        assert result.errors == []
        assert result.rows[0].initial_quantities == {"loc-a": 10, "loc-b": 10}
