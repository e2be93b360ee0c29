"""Pure Python in-memory database for unit testing."""

import copy
import re
from datetime import UTC, datetime
from typing import Any

from fieldops.core.db_client import DatabaseError, RecordNotFoundError
from fieldops.core.errors import ConcurrentModificationError


_COMPARISON = re.compile(r"""^(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(['"])(.*)\3$""")


class InMemoryDBClient:
    """Pure Python in-memory database for unit testing.

    Mirrors the contract of ``fieldops.core.db_client`` closely enough for the
    services: string ids, version-checked updates, the ``field op "value"``
    filter language with ``&&`` and parenthesized ``||`` groups, and
    ``column ASC|DESC`` sorting with NULLs first.
    """

    def __init__(self):
        """Initialize empty in-memory database."""
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._id_counter = 1000
        self.fail_on: set[tuple[str, str]] = set()

    def _check_failure(self, operation: str, collection: str) -> None:
        if (operation, collection) in self.fail_on:
            raise DatabaseError(f"Simulated {operation} failure in {collection}")

    async def create_record(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a new record in the specified collection.

        Raises:
            DatabaseError: If data is not a dict or a failure is simulated
        """
        if not isinstance(data, dict):
            raise DatabaseError(f"Data must be a dictionary, got {type(data)}")
        self._check_failure("create", collection)

        record_id = str(self._id_counter)
        self._id_counter += 1

        now = datetime.now(UTC).isoformat()
        record = {"id": record_id, "created": now, "updated": now, **data}
        self._collections.setdefault(collection, {})[record_id] = record
        return copy.deepcopy(record)

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any]:
        """Get a record by ID from the specified collection.

        Raises:
            RecordNotFoundError: If record not found
        """
        if not isinstance(record_id, str):
            raise DatabaseError(f"Record ID must be a string, got {type(record_id)}")

        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")
        return copy.deepcopy(records[record_id])

    async def update_record(
        self,
        collection: str,
        record_id: str,
        data: dict[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        """Update an existing record, optionally only if its version matches.

        Raises:
            RecordNotFoundError: If record not found
            ConcurrentModificationError: If expected_version does not match
        """
        if not isinstance(data, dict):
            raise DatabaseError(f"Data must be a dictionary, got {type(data)}")
        self._check_failure("update", collection)

        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

        record = records[record_id]
        if expected_version is not None:
            if record.get("version") != expected_version:
                raise ConcurrentModificationError(
                    collection=collection, record_id=record_id, expected_version=expected_version
                )
            record["version"] = expected_version + 1

        record.update({key: value for key, value in data.items() if key != "version"})
        record["updated"] = datetime.now(UTC).isoformat()
        return copy.deepcopy(record)

    async def delete_record(self, collection: str, record_id: str) -> None:
        """Delete a record from the collection.

        Raises:
            RecordNotFoundError: If record not found
        """
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")
        del records[record_id]

    async def list_records(
        self,
        collection: str,
        page: int = 1,
        per_page: int = 100,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]:
        """List records with optional filtering, sorting and pagination."""
        self._check_failure("list", collection)

        records = list(self._collections.get(collection, {}).values())
        if filter_query:
            records = [r for r in records if self._parse_filter(filter_query, r)]
        records = self._apply_sort(records, sort)

        start_idx = (page - 1) * per_page
        return [copy.deepcopy(r) for r in records[start_idx : start_idx + per_page]]

    async def get_first_record(self, collection: str, filter_query: str) -> dict[str, Any] | None:
        """Get the first matching record or None."""
        records = await self.list_records(collection, filter_query=filter_query, per_page=1)
        return records[0] if records else None

    def _parse_filter(self, filter_str: str, record: dict[str, Any]) -> bool:
        """Evaluate a filter expression against a record."""
        for raw_part in filter_str.split("&&"):
            part = raw_part.strip()
            if part.startswith("(") and part.endswith(")"):
                options = [option.strip() for option in part[1:-1].split("||")]
                if not any(self._compare(option, record) for option in options):
                    return False
            elif not self._compare(part, record):
                return False
        return True

    def _compare(self, comparison: str, record: dict[str, Any]) -> bool:
        match = _COMPARISON.match(comparison)
        if not match:
            raise DatabaseError(f"Invalid filter syntax: {comparison}")

        field, op, _, raw_value = match.groups()
        actual = record.get(field)
        if actual is None:
            # SQL NULL never compares true
            return False

        if raw_value.lower() in ("true", "false"):
            expected_bool = raw_value.lower() == "true"
            if op == "=":
                return bool(actual) == expected_bool
            if op == "!=":
                return bool(actual) != expected_bool

        if op == "~":
            return raw_value.lower() in str(actual).lower()

        expected: Any = raw_value
        if isinstance(actual, int | float) and not isinstance(actual, bool):
            try:
                expected = float(raw_value)
            except ValueError:
                actual = str(actual)
        else:
            actual = str(actual)

        operations = {
            "=": lambda a, b: a == b,
            "!=": lambda a, b: a != b,
            ">": lambda a, b: a > b,
            "<": lambda a, b: a < b,
            ">=": lambda a, b: a >= b,
            "<=": lambda a, b: a <= b,
        }
        return operations[op](actual, expected)

    def _apply_sort(self, records: list[dict], sort: str) -> list[dict]:
        """Sort by ``column [ASC|DESC]`` (default id ASC), NULLs first."""
        field, _, direction = (sort.strip() or "id ASC").partition(" ")
        reverse = direction.strip().upper() == "DESC"

        def key(record: dict) -> tuple:
            value = record.get(field)
            if field == "id":
                value = int(value)
            return (value is not None, value if value is not None else "")

        return sorted(records, key=key, reverse=reverse)
