import pytest
from bs4 import BeautifulSoup

from extraction.page_classifier import (
    PageClass, classify_by_name, classify_by_structure, classify_counts,
)


def make_document(table_rows):
    """One table per entry in table_rows, each with that many rows."""
    tables = "".join(
        "<table>" + "<tr><td>a</td><td>b</td></tr>" * rows + "</table>" for rows in table_rows
    )
    return BeautifulSoup(f"<html><body>{tables}</body></html>", 'lxml')


class TestClassifyByName:

    @pytest.mark.parametrize("name, expected", [
        ("Berlin", PageClass.LARGE),
        ("München", PageClass.LARGE),
        ("Düsseldorf", PageClass.LARGE),
        ("Frankfurt am Main", PageClass.LARGE),
        ("Hopferau", PageClass.MEDIUM),
        ("Bad Tölz", PageClass.MEDIUM),
        ("Musterdorf", PageClass.SMALL),
        ("Neuhausen", PageClass.SMALL),
        ("Altenburg", PageClass.SMALL),
        ("Oberau, Ortsteil, Landkreis", PageClass.SMALL),
        ("", PageClass.MEDIUM),
    ])
    def test_name_fragments(self, name, expected):
        assert classify_by_name(name) is expected


class TestClassifyByStructure:

    @pytest.mark.parametrize("table_rows, expected", [
        ([], PageClass.SMALL),
        ([3], PageClass.SMALL),
        ([4], PageClass.MEDIUM),
        ([2, 2], PageClass.MEDIUM),
        ([4, 4], PageClass.MEDIUM),
        ([9], PageClass.LARGE),
        ([1, 1, 1], PageClass.LARGE),
    ])
    def test_thresholds(self, table_rows, expected):
        result = classify_by_structure(make_document(table_rows))
        assert result.page_class is expected
        assert result.table_count == len(table_rows)
        assert result.row_count == sum(table_rows)

    def test_dom_signature(self):
        result = classify_by_structure(make_document([2, 3]))
        assert result.dom_signature == "2t/5r"

    def test_classify_counts(self):
        assert classify_counts(1, 3) is PageClass.SMALL
        assert classify_counts(2, 8) is PageClass.MEDIUM
        assert classify_counts(2, 9) is PageClass.LARGE
