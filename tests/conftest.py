"""
Shared fixtures for the scraper test suite.
"""
import pytest
from bs4 import BeautifulSoup

from core.configuration import ScraperConfig
from models.target import Target
from utils.database_manager import DatabaseManager

BASE_URL = 'https://strom.example/stadt/stromanbieter-in-'

FILLER = (
    "Auf dieser Seite finden Sie aktuelle Informationen rund um die Stromversorgung in Ihrer Region. "
    "Die Angaben beziehen sich auf einen Haushalt mit einem Jahresverbrauch von 2500 Kilowattstunden. "
    "Alle Werte werden monatlich aktualisiert und gelten inklusive Mehrwertsteuer. "
)


def build_page(rows=(), tables=None, city="Hopferau", extra_html=""):
    """
    Build a city page.

    Args:
        rows: Cell tuples for a single price table
        tables: List of (caption, rows) pairs; overrides rows when given
        city: City name used in the heading
        extra_html: Markup appended after the tables
    """
    if tables is None:
        tables = [(None, rows)]

    parts = []
    for caption, table_rows in tables:
        caption_html = f"<caption>{caption}</caption>" if caption else ""
        row_html = "".join(
            "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in table_rows
        )
        parts.append(f"<table>{caption_html}{row_html}</table>")

    return (
        "<html><head><title>Strom in {city}</title></head><body>"
        "<h1>Stromanbieter in {city}</h1><p>{filler}</p>{tables}{extra}"
        "</body></html>"
    ).format(city=city, filler=FILLER, tables="".join(parts), extra=extra_html)


def parse(html):
    return BeautifulSoup(html, 'lxml')


@pytest.fixture
def page_builder():
    return build_page


@pytest.fixture
def soup():
    return parse


@pytest.fixture
def scraper_config(tmp_path):
    """Configuration with no delays and a throwaway database."""
    return ScraperConfig(
        base_url=BASE_URL,
        request_delay=0,
        request_delay_jitter=0,
        retry_base_delay=0,
        min_response_bytes=200,
        data_month='2025-03',
        progress_interval=1,
        database_url=f"sqlite:///{tmp_path / 'prices.db'}",
        diagnostics_dir=str(tmp_path / 'logs'),
    )


@pytest.fixture
def database(scraper_config):
    db = DatabaseManager(scraper_config.database_url)
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def hopferau():
    return Target('87659', 'Hopferau', 47.6167, 10.6333)
