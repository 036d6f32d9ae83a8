"""Bank-statement CSV decoding and the upload (replace-all) path.

A statement must carry the ``Date``, ``Category``, ``Amount`` and
``Description`` headers; extra columns are kept as-is. Rows with a different
number of cells than the header are dropped, and amounts are cleaned the same
way the normalizer cleans them so stored records hold plain numbers.
"""

import csv
from io import StringIO
from typing import List, Union

import pandas as pd

from ledgerlens.errors import CsvFormatError
from ledgerlens.logging_setup import get_logger
from ledgerlens.store import RecordStore
from ledgerlens.transforms import parse_amount

logger = get_logger(__name__)

REQUIRED_HEADERS = ("Date", "Category", "Amount", "Description")
# Spreadsheet exports are UTF-8 with a BOM or Windows-1252.
ENCODINGS = ("utf-8-sig", "cp1252")


def read_text(data: Union[str, bytes]) -> str:
    if isinstance(data, str):
        return data.lstrip("\ufeff")
    for enc in ENCODINGS:
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            continue
    raise CsvFormatError(f"Could not decode file as {' or '.join(ENCODINGS)}.")


def decode_csv(data: Union[str, bytes]) -> List[dict]:
    text = read_text(data)
    if not text or not text.strip():
        raise CsvFormatError("File is empty.")

    try:
        # read_csv pads short rows, so cells are counted before framing.
        rows = [row for row in csv.reader(StringIO(text.strip()), skipinitialspace=True) if row]
    except csv.Error as e:
        raise CsvFormatError(f"Could not read CSV: {e}") from e

    header = [cell.strip() for cell in rows[0]]
    missing = [h for h in REQUIRED_HEADERS if h not in header]
    if missing:
        raise CsvFormatError(f"CSV is missing required headers: {', '.join(REQUIRED_HEADERS)}")

    body = [row for row in rows[1:] if len(row) == len(header)]
    dropped = len(rows) - 1 - len(body)
    if dropped:
        logger.warning("Dropped %d row(s) with a mismatched cell count", dropped)

    frame = pd.DataFrame(body, columns=header, dtype=str)
    for col in frame.columns:
        frame[col] = frame[col].str.strip()
    frame["Amount"] = frame["Amount"].map(parse_amount)
    return frame.to_dict(orient="records")


async def upload_csv(store: RecordStore, user_id: str, data: Union[str, bytes]) -> int:
    """Decode a statement and replace everything stored for ``user_id``."""
    records = decode_csv(data)
    await store.replace_all(user_id, records)
    return len(records)
