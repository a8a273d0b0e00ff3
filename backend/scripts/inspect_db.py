from __future__ import annotations

import argparse
import json
import re
import sqlite3
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")
DEFAULT_LOCAL_TIMEZONE = "America/Edmonton"
TIMESTAMP_COLUMN_NAMES = {"updated_at", "expiry"}
JSON_COLUMN_NAMES = {"payload"}
SAFE_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
SENSITIVE_COLUMN_NAMES = {"access_token", "refresh_token"}
REDACTED = "[REDACTED]"


def resolve_default_db_path() -> Path:
	return Path(__file__).resolve().parents[1] / "data" / "home_api.db"


def parse_utc_timestamp(value: str) -> datetime | None:
	normalized_value = value.strip().replace(" ", "T", 1)
	if not normalized_value:
		return None

	try:
		parsed_value = datetime.fromisoformat(normalized_value.removesuffix("Z"))
	except ValueError:
		return None

	if parsed_value.tzinfo is None:
		return parsed_value.replace(tzinfo=UTC)
	return parsed_value.astimezone(UTC)


def _decode_json(value: object) -> object:
	if not isinstance(value, str):
		return value

	try:
		return json.loads(value)
	except ValueError:
		return value


def format_row(row: dict[str, object], local_zone: ZoneInfo | None = None) -> dict[str, object]:
	"""Redact brokerage tokens, decode cache payloads and expand timestamps.

	Timestamps are stored as naive UTC; each one gains a ``<column>_utc`` and a
	``<column>_local`` rendering next to the raw value.
	"""
	zone = local_zone or ZoneInfo(DEFAULT_LOCAL_TIMEZONE)
	output_row: dict[str, object] = {}
	for column_name, column_value in row.items():
		if column_name in SENSITIVE_COLUMN_NAMES:
			output_row[column_name] = REDACTED if column_value else column_value
			continue

		if column_name in JSON_COLUMN_NAMES:
			output_row[column_name] = _decode_json(column_value)
			continue

		output_row[column_name] = column_value
		if column_name not in TIMESTAMP_COLUMN_NAMES or not isinstance(column_value, str):
			continue

		parsed_value = parse_utc_timestamp(column_value)
		if parsed_value is not None:
			output_row[f"{column_name}_utc"] = parsed_value.isoformat().replace("+00:00", "Z")
			output_row[f"{column_name}_local"] = parsed_value.astimezone(zone).isoformat()

	return output_row


def list_tables(connection: sqlite3.Connection) -> list[str]:
	rows = connection.execute(
		"SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name",
	).fetchall()
	return [row[0] for row in rows]


def inspect_table(
	db_path: Path,
	table_name: str,
	limit: int,
	local_zone: ZoneInfo | None = None,
) -> list[dict[str, object]]:
	if not SAFE_TABLE_NAME_PATTERN.fullmatch(table_name):
		raise ValueError("Unsafe table name.")

	with sqlite3.connect(db_path) as connection:
		if table_name not in list_tables(connection):
			raise ValueError(f"Unknown table: {table_name}")

		connection.row_factory = sqlite3.Row
		rows = connection.execute(
			f"SELECT * FROM {table_name} ORDER BY rowid DESC LIMIT ?",
			(limit,),
		).fetchall()

	return [format_row(dict(row), local_zone) for row in rows]


def main() -> None:
	parser = argparse.ArgumentParser(
		description="Inspect stored balances, caches and credentials with tokens redacted.",
	)
	parser.add_argument("table", nargs="?", help="Table to inspect; omit to list tables.")
	parser.add_argument("--limit", type=int, default=20, help="Number of rows to print.")
	parser.add_argument(
		"--db",
		type=Path,
		default=resolve_default_db_path(),
		help="Path to the SQLite database file.",
	)
	parser.add_argument(
		"--timezone",
		default=DEFAULT_LOCAL_TIMEZONE,
		help="Zone used for the *_local timestamp columns.",
	)
	args = parser.parse_args()

	if args.table is None:
		with sqlite3.connect(args.db) as connection:
			for table_name in list_tables(connection):
				print(table_name)
		return

	for row in inspect_table(args.db, args.table, args.limit, ZoneInfo(args.timezone)):
		print(json.dumps(row, ensure_ascii=False, default=str))


if __name__ == "__main__":
	main()
