"""
Roster import from spreadsheets.

Excel workbooks (.xlsx, first sheet) and CSV exports are accepted. Expected
columns: Name, Email, Phone, Team. Header names are matched
case-insensitively and a few common aliases are accepted.
"""
import csv
import io
import os
import zipfile
from typing import List, Dict

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

COLUMN_ALIASES = {
    'name': ('name',),
    'email': ('email',),
    'phone': ('phone', 'mobile'),
    'team_name': ('team', 'team name', 'team_name'),
}

TEMPLATE_COLUMNS = ['Name', 'Email', 'Phone', 'Team']
TEMPLATE_ROWS = [
    ['John Doe', 'john@example.com', '1234567890', 'Team A'],
    ['Jane Smith', 'jane@example.com', '0987654321', 'Team B'],
    ['Bob Wilson', 'bob@example.com', '5555555555', 'Team A'],
]
XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


class RosterParseError(Exception):
    pass


def _cell_text(value) -> str:
    if value is None:
        return ''
    # Numbers typed into a sheet come back as floats, e.g. phone 5551234.0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _pick(row: Dict[str, str], field: str) -> str:
    for alias in COLUMN_ALIASES[field]:
        value = row.get(alias)
        if value and value.strip():
            return value.strip()
    return ''


def _rows_to_players(records: List[Dict]) -> List[Dict]:
    """Map header-keyed records to player dicts, dropping rows without name or team."""
    players = []
    for index, raw in enumerate(records):
        row = {str(k or '').strip().lower(): _cell_text(v) for k, v in raw.items()}
        players.append({
            'name': _pick(row, 'name'),
            'email': _pick(row, 'email'),
            'phone': _pick(row, 'phone'),
            'team_name': _pick(row, 'team_name'),
            'row_number': index + 2,
        })

    valid_players = [p for p in players if p['name'] and p['team_name']]
    if not valid_players:
        raise RosterParseError('No valid player data found. Please ensure columns: Name, Team are present.')
    return valid_players


def parse_roster_csv(text: str) -> List[Dict]:
    """
    Parse roster rows out of CSV text.

    Rows without a name or a team are dropped. row_number counts the header
    as row 1 so it matches what the spreadsheet shows.
    """
    try:
        reader = csv.DictReader(io.StringIO(text))
        # Extra cells past the header land under a None key as a list
        records = [{k: v for k, v in raw.items() if isinstance(v, str)} for raw in reader]
    except csv.Error as e:
        raise RosterParseError(f'Failed to parse roster file: {e}')
    return _rows_to_players(records)


def parse_roster_xlsx(data: bytes) -> List[Dict]:
    """
    Parse roster rows out of the first sheet of an Excel workbook.

    The first row is the header. row_number is the sheet row, as in
    parse_roster_csv.
    """
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise RosterParseError(f'Failed to parse Excel file: {e}')

    try:
        rows = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            raise RosterParseError('No valid player data found. Please ensure columns: Name, Team are present.')
        records = [dict(zip(header, values)) for values in rows]
    finally:
        workbook.close()
    return _rows_to_players(records)


def parse_roster_file(filename: str, data: bytes) -> List[Dict]:
    """Parse an uploaded roster, choosing the reader from the file extension."""
    extension = os.path.splitext(filename or '')[1].lower()
    if extension == '.xlsx':
        return parse_roster_xlsx(data)
    if extension in ('.csv', '.txt', ''):
        try:
            text = data.decode('utf-8-sig')
        except UnicodeDecodeError:
            raise RosterParseError('Roster file must be UTF-8 encoded CSV.')
        return parse_roster_csv(text)
    raise RosterParseError(f'Unsupported roster file type "{extension}". Upload an .xlsx or .csv file.')


def build_sample_template() -> bytes:
    """Sample roster workbook with the expected columns and three example rows."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = 'Players'
    sheet.append(TEMPLATE_COLUMNS)
    for row in TEMPLATE_ROWS:
        sheet.append(row)
    output = io.BytesIO()
    workbook.save(output)
    return output.getvalue()


def validate_players(players: List[Dict]) -> Dict:
    """Check roster rows. Returns {'valid': bool, 'errors': [...], 'warnings': [...]}."""
    errors = []
    warnings = []

    if not players:
        errors.append('No players provided')
        return {'valid': False, 'errors': errors, 'warnings': warnings}

    for index, player in enumerate(players):
        row = player.get('row_number') or index + 1
        if not (player.get('name') or '').strip():
            errors.append(f'Row {row}: Name is required')
        if not (player.get('team_name') or '').strip():
            errors.append(f'Row {row}: Team is required')
        if not (player.get('email') or '').strip():
            warnings.append(f'Row {row}: Email is missing')

    return {
        'valid': len(errors) == 0,
        'errors': errors,
        'warnings': warnings,
    }
