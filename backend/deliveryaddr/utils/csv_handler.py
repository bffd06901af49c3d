import io

import pandas as pd
from fastapi import UploadFile

# 엑셀에서 저장한 CSV는 BOM 또는 cp949 인코딩인 경우가 많음
CSV_ENCODINGS = ("utf-8-sig", "cp949")
EXCEL_SUFFIXES = (".xlsx", ".xlsm")


def decode_csv_bytes(content: bytes) -> pd.DataFrame:
    """Parse raw CSV bytes, trying UTF-8 (with BOM) first and then cp949."""
    last_error = None
    for encoding in CSV_ENCODINGS:
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError as e:
            last_error = e
            continue
        return pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    raise ValueError(f"Unsupported CSV encoding: {last_error}")


def decode_excel_bytes(content: bytes) -> pd.DataFrame:
    """First sheet of an .xlsx workbook, all cells as text."""
    return pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=str, keep_default_na=False, engine="openpyxl")


def read_csv_file(file: UploadFile) -> pd.DataFrame:
    """Read UploadFile as Pandas DataFrame (all columns as text)"""
    return decode_csv_bytes(file.file.read())


def read_table_file(file: UploadFile) -> pd.DataFrame:
    """CSV or Excel upload, chosen by file extension."""
    content = file.file.read()
    if (file.filename or "").lower().endswith(EXCEL_SUFFIXES):
        return decode_excel_bytes(content)
    return decode_csv_bytes(content)


def df_to_csv_text(df: pd.DataFrame) -> str:
    """Serialize a DataFrame for download; the BOM keeps Excel from garbling Hangul."""
    buffer = io.StringIO()
    buffer.write("\ufeff")
    df.to_csv(buffer, index=False)
    return buffer.getvalue()
