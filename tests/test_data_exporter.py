import csv
import json

import openpyxl
import pytest

from data_exporter import EXPORT_COLUMNS, DataExporter

ROWS = [
    {
        'id': 1, 'organization_name': 'Alpha', 'email': 'info@alpha.pt', 'phone': None,
        'website': 'https://alpha.pt', 'country': 'Portugal', 'description': 'Clinic',
        'all_emails': ['info@alpha.pt', 'hr@alpha.pt'], 'source_url': None,
        'task_name': 'Dental clinics', 'original_query': 'dentists', 'parsing_timestamp': '2026-01-01 10:00:00',
    },
    {
        'id': 2, 'organization_name': 'Beta', 'email': None, 'phone': '+34 600 000 000',
        'website': None, 'country': 'Spain', 'description': None, 'all_emails': [],
        'source_url': 'https://maps.example.com/beta', 'task_name': 'Dental clinics',
        'original_query': 'dentists', 'parsing_timestamp': '2026-01-01 10:00:00',
    },
]


@pytest.fixture
def exporter(tmp_path):
    return DataExporter(str(tmp_path / "exports"))


def test_csv(exporter):
    path = exporter.export_to_csv(ROWS, "out.csv")

    with open(path, newline='', encoding='utf-8') as f:
        rows = list(csv.reader(f))

    assert rows[0] == [header for header, _ in EXPORT_COLUMNS]
    assert rows[1][0] == 'Alpha'
    assert rows[1][6] == 'info@alpha.pt, hr@alpha.pt'
    assert rows[2][1] == ''


def test_json(exporter):
    path = exporter.export_to_json(ROWS)

    with open(path, encoding='utf-8') as f:
        assert json.load(f) == ROWS


def test_excel(exporter):
    path = exporter.export_to_excel(ROWS, "out.xlsx")

    ws = openpyxl.load_workbook(path).active
    assert ws.cell(row=1, column=1).value == 'Organization'
    assert ws.cell(row=3, column=3).value == '+34 600 000 000'
    assert ws.max_row == 3


def test_unknown_format(exporter):
    with pytest.raises(ValueError):
        exporter.export(ROWS, 'pdf')


def test_summary(exporter):
    summary = exporter.export_summary(ROWS)

    assert summary == {
        'total_contacts': 2,
        'contacts_with_email': 1,
        'contacts_with_phone': 1,
        'contacts_with_website': 1,
        'unique_countries': 2,
    }
