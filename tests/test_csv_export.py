import csv
import io
from datetime import datetime

from georeport.utils.csv_export import export_filename, format_date, to_csv


def parse(content):
    return list(csv.reader(io.StringIO(content)))


def test_quotes_are_escaped_and_round_trip():
    content = to_csv([{"Nombre": 'He said "hi"', "Descripción": "a, b"}], ["Nombre", "Descripción"])

    assert content.splitlines()[1] == '"He said ""hi""","a, b"'
    assert parse(content)[1] == ['He said "hi"', "a, b"]


def test_newlines_survive_round_trip():
    content = to_csv([{"Nombre": "line one\nline two"}], ["Nombre"])

    assert parse(content) == [["Nombre"], ["line one\nline two"]]


def test_missing_and_none_values_are_empty():
    content = to_csv([{"Nombre": None}], ["Nombre", "Color"])

    assert parse(content)[1] == ["", ""]


def test_header_only_when_no_rows():
    assert to_csv([], ["Tipo", "Fecha"]) == "Tipo,Fecha\n"


def test_date_and_filename_formats():
    when = datetime(2024, 3, 9, 14, 5, 7)

    assert format_date(when) == "09/03/2024 14:05"
    assert format_date(None) == ""
    assert export_filename("actividades", now=when) == "actividades_2024-03-09_14-05-07.csv"
