import pytest

from utils.file_utils import load_targets, parse_geo_point


def write_csv(tmp_path, content, name='plz.csv'):
    path = tmp_path / name
    path.write_text(content, encoding='utf-8-sig')
    return str(path)


def test_opendatasoft_export(tmp_path):
    path = write_csv(tmp_path, (
        "Postleitzahl / Post code;PLZ Name (short);geo_point_2d\n"
        "87659;Hopferau;47.6167, 10.6333\n"
        "1067;Dresden;51.0577, 13.7185\n"
    ))
    targets = load_targets(path)

    assert [t.postal_code for t in targets] == ['87659', '01067']
    assert targets[0].display_name == 'Hopferau'
    assert targets[0].coordinates == (47.6167, 10.6333)


def test_alias_columns_and_comma_delimiter(tmp_path):
    path = write_csv(tmp_path, "PLZ,Ort\n10115,Berlin\n")
    targets = load_targets(path, delimiter=',')
    assert targets[0].postal_code == '10115'
    assert targets[0].coordinates is None


def test_rows_without_name_or_postal_code_skipped(tmp_path):
    path = write_csv(tmp_path, (
        "PLZ;Name\n"
        "87659;Hopferau\n"
        ";Ohne Postleitzahl\n"
        "87660;\n"
        "abc;Kaputt\n"
    ))
    assert [t.postal_code for t in load_targets(path)] == ['87659']


def test_duplicate_postal_code_keeps_first(tmp_path):
    path = write_csv(tmp_path, "PLZ;Name\n87659;Hopferau\n87659;Hopferau Ortsteil\n")
    targets = load_targets(path)
    assert len(targets) == 1
    assert targets[0].display_name == 'Hopferau'


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_targets(str(tmp_path / 'missing.csv'))


@pytest.mark.parametrize("value, expected", [
    ("47.6167, 10.6333", (47.6167, 10.6333)),
    ("47.6167,10.6333", (47.6167, 10.6333)),
    ("", (None, None)),
    (None, (None, None)),
    ("47.6", (None, None)),
    ("north, east", (None, None)),
])
def test_parse_geo_point(value, expected):
    assert parse_geo_point(value) == expected
