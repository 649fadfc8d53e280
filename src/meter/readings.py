"""Meter reading storage and CSV import/export.

CSV format: date, value[, id]
Dates are ISO 8601 (YYYY-MM-DD, optionally with a time of day).
"""

import csv
import logging
import math
import sqlite3
import uuid
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path

from .billing import sort_readings
from .db import get_connection
from .models import Reading

logger = logging.getLogger(__name__)


class ReadingError(ValueError):
    """A reading value or date that cannot be stored."""
    pass


class ReadingNotFoundError(ReadingError):
    """No reading exists with the requested id."""
    pass


def new_reading_id() -> str:
    return str(uuid.uuid4())


def parse_date(text: str) -> date | datetime:
    """Parse YYYY-MM-DD into a date, or a full ISO timestamp into a datetime."""
    text = text.strip()
    try:
        if len(text) > 10:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        return date.fromisoformat(text)
    except ValueError as e:
        raise ReadingError(f"Invalid reading date: {text!r}") from e


def check_value(value: float) -> float:
    """Reject negative or non-finite meter values."""
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise ReadingError(f"Meter value must be a non-negative number, got {value}")
    return value


def _row_to_reading(row: sqlite3.Row) -> Reading:
    return Reading(id=row["id"], date=parse_date(row["date"]), value=row["value"])


def list_readings(db_path: Path | None = None) -> list[Reading]:
    """All stored readings in insertion order."""
    with get_connection(db_path) as conn:
        rows = conn.execute("SELECT id, date, value FROM readings ORDER BY rowid").fetchall()
    return [_row_to_reading(row) for row in rows]


def get_reading(reading_id: str, db_path: Path | None = None) -> Reading:
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT id, date, value FROM readings WHERE id = ?", (reading_id,)
        ).fetchone()
    if row is None:
        raise ReadingNotFoundError(f"No reading with id {reading_id}")
    return _row_to_reading(row)


def get_latest_reading(db_path: Path | None = None) -> Reading | None:
    """The most recent reading by date (last inserted wins a tie)."""
    readings = sort_readings(list_readings(db_path))
    return readings[-1] if readings else None


def get_previous_reading(reading_id: str, db_path: Path | None = None) -> Reading | None:
    """The reading just before reading_id in date order, or None for the first one."""
    readings = sort_readings(list_readings(db_path))
    for previous, current in zip(readings, readings[1:]):
        if current.id == reading_id:
            return previous
    return None


def save_readings(readings: list[Reading], db_path: Path | None = None) -> dict:
    """Save readings to the database.

    Returns dict with 'imported' and 'skipped' counts.
    """
    imported = 0
    skipped = 0

    with get_connection(db_path) as conn:
        for reading in readings:
            check_value(reading.value)
            try:
                conn.execute(
                    "INSERT INTO readings (id, date, value) VALUES (?, ?, ?)",
                    (reading.id, reading.date.isoformat(), reading.value),
                )
                imported += 1
            except sqlite3.IntegrityError:
                logger.debug("Skipping duplicate reading id %s", reading.id)
                skipped += 1

        conn.commit()

    return {"imported": imported, "skipped": skipped}


def add_reading(
    reading_date: date | datetime,
    value: float,
    reading_id: str | None = None,
    db_path: Path | None = None,
) -> Reading:
    """Create and store a new reading."""
    reading = Reading(id=reading_id or new_reading_id(), date=reading_date, value=check_value(value))
    result = save_readings([reading], db_path)
    if result["skipped"]:
        raise ReadingError(f"A reading with id {reading.id} already exists")
    logger.info("Added reading %s: %s on %s", reading.id, reading.value, reading.date)
    return reading


def update_reading(
    reading_id: str,
    reading_date: date | datetime | None = None,
    value: float | None = None,
    db_path: Path | None = None,
) -> Reading:
    """Change the date and/or value of a reading. The id never changes."""
    current = get_reading(reading_id, db_path)
    updated = replace(
        current,
        date=reading_date if reading_date is not None else current.date,
        value=check_value(value) if value is not None else current.value,
    )

    with get_connection(db_path) as conn:
        conn.execute(
            "UPDATE readings SET date = ?, value = ? WHERE id = ?",
            (updated.date.isoformat(), updated.value, reading_id),
        )
        conn.commit()

    logger.info("Updated reading %s", reading_id)
    return updated


def delete_reading(reading_id: str, db_path: Path | None = None) -> None:
    with get_connection(db_path) as conn:
        cursor = conn.execute("DELETE FROM readings WHERE id = ?", (reading_id,))
        conn.commit()
    if cursor.rowcount == 0:
        raise ReadingNotFoundError(f"No reading with id {reading_id}")
    logger.info("Deleted reading %s", reading_id)


def parse_csv(csv_path: Path) -> list[Reading]:
    """Parse a readings CSV file. Rows without an id get a new one."""
    readings = []
    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        for line_no, row in enumerate(reader, start=2):
            if not row.get("date") or not row.get("value"):
                raise ReadingError(f"Missing field on line {line_no}: {row}")
            try:
                value = float(row["value"])
            except ValueError as e:
                raise ReadingError(f"Invalid value on line {line_no}: {row['value']!r}") from e
            readings.append(
                Reading(
                    id=(row.get("id") or "").strip() or new_reading_id(),
                    date=parse_date(row["date"]),
                    value=check_value(value),
                )
            )
    return readings


def import_from_csv(csv_path: Path, db_path: Path | None = None) -> dict:
    """Import readings from a CSV file.

    Returns dict with 'imported' and 'skipped' counts.
    """
    readings = parse_csv(csv_path)
    result = save_readings(readings, db_path)
    logger.info("Imported %d readings from %s", result["imported"], csv_path)
    return result


def export_to_csv(csv_path: Path, db_path: Path | None = None) -> int:
    """Write every reading to a CSV file. Returns number of rows written."""
    readings = list_readings(db_path)
    with open(csv_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["date", "value", "id"])
        writer.writeheader()
        for reading in readings:
            writer.writerow(
                {"date": reading.date.isoformat(), "value": reading.value, "id": reading.id}
            )
    return len(readings)
