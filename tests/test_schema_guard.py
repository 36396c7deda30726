from __future__ import annotations

import unittest
from unittest.mock import patch

from carepoints.services.schema_guard import REQUIRED_TABLE_COLUMNS, verify_runtime_schema


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeEngine:
    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(
        self,
        *,
        columns_by_table: dict[str, set[str]],
        enums: list[dict[str, object]],
        unique_constraints: dict[str, list[str]],
    ):
        self._columns_by_table = columns_by_table
        self._enums = enums
        self._unique_constraints = unique_constraints

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        columns = self._columns_by_table[table_name]
        return [{"name": item} for item in columns]

    def get_unique_constraints(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"name": item} for item in self._unique_constraints.get(table_name, [])]

    def get_enums(self):  # type: ignore[no-untyped-def]
        return self._enums


_FULL_ENUMS = [
    {"name": "corrective_action_status", "labels": ["PENDING_SIGNATURE", "ACKNOWLEDGED", "DISPUTED", "VOIDED"]},
    {"name": "signer_role", "labels": ["EMPLOYEE", "SUPERVISOR", "WITNESS", "HR"]},
]


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_ok_when_required_columns_exist(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table={name: set(columns) for name, columns in REQUIRED_TABLE_COLUMNS.items()},
            enums=_FULL_ENUMS,
            unique_constraints={
                "corrective_action_signatures": ["uq_corrective_action_signatures_action_role_signer"],
            },
        )

        with patch("carepoints.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine("0002_discipline_tracker"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.warnings, [])

    def test_verify_runtime_schema_reports_missing_pieces(self) -> None:
        columns = {name: set(columns) for name, columns in REQUIRED_TABLE_COLUMNS.items()}
        columns["corrective_actions"] = {"id", "employee_id", "violation_date", "status"}
        fake_inspector = _FakeInspector(
            columns_by_table=columns,
            enums=[{"name": "corrective_action_status", "labels": ["PENDING_SIGNATURE", "VOIDED"]}],
            unique_constraints={},
        )

        with patch("carepoints.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine(""))  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertTrue(any(item.startswith("MISSING_COLUMNS:corrective_actions:") for item in result.issues))
        self.assertTrue(
            any(item.startswith("MISSING_ENUM_VALUES:corrective_action_status:ACKNOWLEDGED") for item in result.issues)
        )
        self.assertTrue(any(item.startswith("MISSING_UNIQUE_CONSTRAINTS:") for item in result.issues))
        self.assertIn("ENUM_NOT_FOUND:signer_role", result.warnings)
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)


if __name__ == "__main__":
    unittest.main()
