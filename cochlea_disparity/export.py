"""
Flat-file export of disparity results.
"""

import pandas as pd
from pathlib import Path
from typing import Dict, Union
import logging

logger = logging.getLogger(__name__)

# Excel limits sheet names to 31 characters and forbids a few symbols
_SHEET_FORBIDDEN = str.maketrans({c: "_" for c in "[]:*?/\\"})


def write_table(table: pd.DataFrame, path: Union[str, Path], precision: int = 8) -> Path:
    """
    Write a result table as CSV.

    Args:
        table: Table to write
        path: Output path
        precision: Decimal places for float columns

    Returns:
        Written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table.round(precision).to_csv(path, index=False)
    logger.info(f"Saved {len(table)} rows to {path}")
    return path


def write_spreadsheet(
    tables: Dict[str, pd.DataFrame],
    path: Union[str, Path],
    precision: int = 8
) -> Path:
    """
    Write several tables into one workbook, one sheet per table.

    Args:
        tables: Mapping of sheet name -> table
        path: Output .xlsx path
        precision: Decimal places for float columns

    Returns:
        Written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, table in tables.items():
            sheet = str(name).translate(_SHEET_FORBIDDEN)[:31]
            table.round(precision).to_excel(writer, sheet_name=sheet, index=False)

    logger.info(f"Saved {len(tables)} sheets to {path}")
    return path
