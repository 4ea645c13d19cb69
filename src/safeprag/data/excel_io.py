from __future__ import annotations

import io

import pandas as pd


def write_excel_bytes(rows: list[dict], *, columns: dict[str, str], sheet_name: str = "Dados") -> bytes:
    """Write rows to .xlsx bytes.

    ``columns`` maps row keys to header labels and fixes the column order;
    keys missing from a row become empty cells.
    """
    df = pd.DataFrame(rows, columns=list(columns.keys()))
    df = df.rename(columns=columns)
    bio = io.BytesIO()
    with pd.ExcelWriter(bio, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
    return bio.getvalue()
