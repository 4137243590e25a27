"""
Data export functionality for saved parsing results
"""
import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime
import openpyxl
from openpyxl.styles import Font, PatternFill, Alignment

logger = logging.getLogger(__name__)

# Column header -> row key
EXPORT_COLUMNS = [
    ('Organization', 'organization_name'),
    ('Email', 'email'),
    ('Phone', 'phone'),
    ('Website', 'website'),
    ('Country', 'country'),
    ('Description', 'description'),
    ('All Emails', 'all_emails'),
    ('Source URL', 'source_url'),
    ('Task', 'task_name'),
    ('Query', 'original_query'),
    ('Saved At', 'parsing_timestamp'),
]


def _cell(row: Dict[str, Any], key: str) -> str:
    value = row.get(key)
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        return ', '.join(str(v) for v in value)
    return str(value)


class DataExporter:
    """Export saved results to various formats"""

    def __init__(self, output_dir: str = "output"):
        """Initialize exporter with output directory"""
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _filepath(self, filename: Optional[str], prefix: str, extension: str) -> Path:
        if not filename:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"{prefix}_{timestamp}.{extension}"
        return self.output_dir / filename

    def export_to_csv(self, results: List[Dict[str, Any]], filename: str = None) -> str:
        """Export results to CSV format"""
        filepath = self._filepath(filename, 'contacts', 'csv')

        with open(filepath, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.writer(csvfile)
            writer.writerow([header for header, _ in EXPORT_COLUMNS])

            for row in results:
                writer.writerow([_cell(row, key) for _, key in EXPORT_COLUMNS])

        logger.info(f"Exported {len(results)} contacts to {filepath}")
        return str(filepath)

    def export_to_json(self, results: List[Dict[str, Any]], filename: str = None) -> str:
        """Export results to JSON format with full details"""
        filepath = self._filepath(filename, 'contacts', 'json')

        with open(filepath, 'w', encoding='utf-8') as jsonfile:
            json.dump(results, jsonfile, indent=2, ensure_ascii=False, default=str)

        logger.info(f"Exported {len(results)} contacts to {filepath}")
        return str(filepath)

    def export_to_excel(self, results: List[Dict[str, Any]], filename: str = None) -> str:
        """Export results to Excel format with formatting"""
        filepath = self._filepath(filename, 'contacts', 'xlsx')

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Contacts"

        # Style headers
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")

        for col, (header, _) in enumerate(EXPORT_COLUMNS, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        for row_idx, row in enumerate(results, 2):
            for col, (_, key) in enumerate(EXPORT_COLUMNS, 1):
                ws.cell(row=row_idx, column=col, value=_cell(row, key))

        # Auto-adjust column widths
        for column in ws.columns:
            max_length = max(len(str(cell.value or '')) for cell in column)
            ws.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)

        wb.save(filepath)
        logger.info(f"Exported {len(results)} contacts to Excel: {filepath}")
        return str(filepath)

    def export(self, results: List[Dict[str, Any]], fmt: str, filename: str = None) -> str:
        """Export in the named format (csv, json or excel)"""
        exporters = {
            'csv': self.export_to_csv,
            'json': self.export_to_json,
            'excel': self.export_to_excel,
        }
        if fmt not in exporters:
            raise ValueError(f"Unsupported export format: {fmt}")
        return exporters[fmt](results, filename)

    def export_summary(self, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Generate a summary of the export"""
        countries = set(r['country'] for r in results if r.get('country'))

        return {
            'total_contacts': len(results),
            'contacts_with_email': sum(1 for r in results if r.get('email')),
            'contacts_with_phone': sum(1 for r in results if r.get('phone')),
            'contacts_with_website': sum(1 for r in results if r.get('website')),
            'unique_countries': len(countries),
        }
