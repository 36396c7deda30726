from __future__ import annotations

import base64
import unittest
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from carepoints.errors import (
    DuplicateSignatureError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from carepoints.models import (
    ActionStatus,
    CorrectiveAction,
    CorrectiveActionSignature,
    DisciplineLevel,
    Employee,
    SeverityLevel,
    SignerRole,
    User,
    UserRole,
    ViolationCategory,
)
from carepoints.schemas import CorrectiveActionCreate, CorrectiveActionUpdate, SignRequest
from carepoints.security import Actor
from carepoints.services.corrective_actions import (
    CaptureContext,
    get_action_detail,
    get_discipline_history,
    get_signature_status,
    issue_corrective_action,
    list_corrective_actions,
    sign_corrective_action,
    update_corrective_action,
    validate_signature_image,
    void_corrective_action,
)
from carepoints.services.points import get_points_summary

TODAY = date(2026, 5, 1)
SIGNATURE = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\nsignature-strokes").decode("ascii")


class _ScalarResult:
    def __init__(self, rows):
        self._rows = rows

    def all(self):  # type: ignore[no-untyped-def]
        return self._rows


class _DriverError(Exception):
    def __init__(self, constraint_name: str):
        super().__init__(f"violates constraint \"{constraint_name}\"")
        self.diag = SimpleNamespace(constraint_name=constraint_name)


class _FakeLedgerDB:
    """In-memory stand-in for the session used by the ledger service."""

    def __init__(self):
        self.objects: dict[type, dict[int, object]] = defaultdict(dict)
        self.pending: list[object] = []
        self.next_ids: dict[type, int] = defaultdict(int)
        self.statements: list[str] = []
        self.commit_error: Exception | None = None
        self.hide_signatures_from_lookup = False
        self.at_risk_employee_ids: list[int] = []
        self.commits = 0
        self.rollbacks = 0
        self.locked: list[tuple[type, int]] = []

    def put(self, obj):  # type: ignore[no-untyped-def]
        model = type(obj)
        if getattr(obj, "id", None) is None:
            self.next_ids[model] += 1
            obj.id = 1000 + self.next_ids[model]
        self.objects[model][obj.id] = obj
        return obj

    def get(self, model, pk, **kwargs):  # type: ignore[no-untyped-def]
        if kwargs.get("with_for_update"):
            self.locked.append((model, pk))
        return self.objects[model].get(pk)

    def scalar(self, statement):  # type: ignore[no-untyped-def]
        sql = str(statement)
        self.statements.append(sql)
        if "FROM corrective_action_signatures" in sql and not self.hide_signatures_from_lookup:
            params = statement.compile().params
            for signature in self.objects[CorrectiveActionSignature].values():
                if (
                    signature.corrective_action_id == params["corrective_action_id_1"]
                    and signature.signer_role == params["signer_role_1"]
                    and signature.signer_id == params["signer_id_1"]
                ):
                    return signature.id
        return None

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        sql = str(statement)
        self.statements.append(sql)
        if "GROUP BY" in sql:
            return _ScalarResult(list(self.at_risk_employee_ids))
        if "FROM corrective_actions" in sql:
            return _ScalarResult(list(self.objects[CorrectiveAction].values()))
        return _ScalarResult([])

    def add(self, obj: object) -> None:
        self.pending.append(obj)

    def flush(self) -> None:
        for obj in self.pending:
            self.put(obj)
        self.pending.clear()

    def commit(self) -> None:
        if self.commit_error is not None:
            error, self.commit_error = self.commit_error, None
            raise error
        self.flush()
        self.commits += 1

    def rollback(self) -> None:
        self.pending.clear()
        self.rollbacks += 1

    def refresh(self, _obj: object) -> None:
        return


def _actor(user_id: int, role: UserRole) -> Actor:
    return Actor(user_id=user_id, username=f"user{user_id}", role=role, full_name=f"User {user_id}")


SUPERVISOR = _actor(5, UserRole.DESIGNATED_MANAGER)
HR = _actor(2, UserRole.HR)
DSP = _actor(9, UserRole.DSP)
EMPLOYEE_SIGNER = _actor(30, UserRole.DSP)


def _ledger(*, default_points: int = 6) -> _FakeLedgerDB:
    fake_db = _FakeLedgerDB()
    fake_db.put(Employee(id=7, first_name="Dana", last_name="Reyes", is_active=True))
    fake_db.put(
        ViolationCategory(
            id=3,
            category_name="No-call/no-show",
            severity_level=SeverityLevel.SERIOUS,
            default_points=default_points,
            display_order=6,
            is_active=True,
        )
    )
    fake_db.put(User(id=11, username="witness", password_hash="x", full_name="Wes Witness", role=UserRole.OPERATIONS))
    return fake_db


def _issue(fake_db: _FakeLedgerDB, *, actor: Actor = SUPERVISOR, **overrides):  # type: ignore[no-untyped-def]
    payload = {
        "employee_id": 7,
        "violation_category_id": 3,
        "violation_date": TODAY,
        "incident_description": "Did not report for the 7am shift",
    }
    payload.update(overrides)
    return issue_corrective_action(
        fake_db,  # type: ignore[arg-type]
        actor=actor,
        payload=CorrectiveActionCreate(**payload),
        capture=CaptureContext(ip_address="10.0.0.4", device_info="pytest"),
        as_of=TODAY,
    )


def _sign(fake_db: _FakeLedgerDB, action_id: int, *, actor: Actor, role: SignerRole, **extra):  # type: ignore[no-untyped-def]
    payload = {"signer_role": role, "signature_data": SIGNATURE}
    payload.update(extra)
    return sign_corrective_action(
        fake_db,  # type: ignore[arg-type]
        actor=actor,
        action_id=action_id,
        payload=SignRequest(**payload),
    )


class IssueCorrectiveActionTests(unittest.TestCase):
    def test_issue_uses_category_default_points(self) -> None:
        fake_db = _ledger(default_points=6)
        result = _issue(fake_db)

        self.assertEqual(result.points_before, 0)
        self.assertEqual(result.new_points, 6)
        self.assertEqual(result.total_points, 6)
        self.assertEqual(result.thresholds_crossed, [6])
        self.assertEqual(result.action.points_assigned, 6)
        self.assertIsNone(result.action.points_adjusted)
        self.assertEqual(result.action.status, ActionStatus.PENDING_SIGNATURE)
        self.assertEqual(result.action.discipline_level, DisciplineLevel.VERBAL_WARNING)
        self.assertEqual(result.action.issued_by_id, SUPERVISOR.user_id)
        self.assertEqual(fake_db.commits, 1)

    def test_issue_honours_explicit_and_adjusted_points(self) -> None:
        fake_db = _ledger(default_points=6)
        result = _issue(fake_db, points_assigned=3, points_adjusted=1, adjustment_reason="First offence")

        self.assertEqual(result.action.points_assigned, 3)
        self.assertEqual(result.action.points_adjusted, 1)
        self.assertEqual(result.new_points, 1)
        self.assertEqual(result.total_points, 1)
        self.assertEqual(result.action.discipline_level, DisciplineLevel.COACHING)

    def test_any_role_may_issue(self) -> None:
        fake_db = _ledger(default_points=2)
        result = _issue(fake_db, actor=DSP)
        self.assertEqual(result.action.issued_by_id, DSP.user_id)

    def test_old_violation_does_not_raise_current_total(self) -> None:
        fake_db = _ledger(default_points=6)
        result = _issue(fake_db, violation_date=TODAY - timedelta(days=120))
        self.assertEqual(result.total_points, 0)
        self.assertEqual(result.action.discipline_level, DisciplineLevel.GOOD_STANDING)

    def test_issue_logs_threshold_crossing(self) -> None:
        fake_db = _ledger(default_points=5)
        _issue(fake_db)
        with self.assertLogs("carepoints.discipline", level="WARNING") as captured:
            result = _issue(fake_db)
        self.assertEqual(result.points_before, 5)
        self.assertEqual(result.total_points, 10)
        self.assertEqual(result.thresholds_crossed, [6, 10])
        self.assertTrue(any("discipline_threshold_crossed" in line for line in captured.output))

    def test_issue_records_initial_signatures(self) -> None:
        fake_db = _ledger()
        result = _issue(fake_db, supervisor_signature=SIGNATURE, witness_id=11, witness_signature=SIGNATURE)

        signatures = list(fake_db.objects[CorrectiveActionSignature].values())
        by_role = {item.signer_role: item for item in signatures}
        self.assertEqual(set(by_role), {SignerRole.SUPERVISOR, SignerRole.WITNESS})
        self.assertEqual(by_role[SignerRole.SUPERVISOR].signer_id, SUPERVISOR.user_id)
        self.assertEqual(by_role[SignerRole.WITNESS].signer_id, 11)
        self.assertEqual(by_role[SignerRole.SUPERVISOR].corrective_action_id, result.action.id)
        self.assertEqual(by_role[SignerRole.SUPERVISOR].ip_address, "10.0.0.4")

    def test_issue_rejects_unknown_references(self) -> None:
        fake_db = _ledger()
        with self.assertRaises(NotFoundError):
            _issue(fake_db, employee_id=404)
        with self.assertRaises(NotFoundError) as ctx:
            _issue(fake_db, violation_category_id=404)
        self.assertEqual(ctx.exception.message, "Violation category not found")
        with self.assertRaises(NotFoundError):
            _issue(fake_db, witness_id=404, witness_signature=SIGNATURE)
        self.assertEqual(fake_db.objects[CorrectiveAction], {})

    def test_issue_rejects_malformed_supervisor_signature(self) -> None:
        fake_db = _ledger()
        with self.assertRaises(ValidationError):
            _issue(fake_db, supervisor_signature="not-an-image")
        self.assertEqual(fake_db.objects[CorrectiveAction], {})

    def test_issue_requires_incident_description(self) -> None:
        base = {"employee_id": 7, "violation_category_id": 3, "violation_date": TODAY}
        for extra in ({}, {"incident_description": ""}, {"incident_description": "   "}):
            with self.subTest(extra=extra):
                with self.assertRaises(PydanticValidationError):
                    CorrectiveActionCreate(**base, **extra)

        payload = CorrectiveActionCreate(**base, incident_description="  Left shift early \n")
        self.assertEqual(payload.incident_description, "Left shift early")


class SignatureImageTests(unittest.TestCase):
    def test_accepts_base64_image_data_url(self) -> None:
        self.assertEqual(validate_signature_image(SIGNATURE), SIGNATURE)

    def test_rejects_other_payloads(self) -> None:
        for value in (
            "",
            "plain text",
            "data:text/plain;base64,aGVsbG8=",
            "data:image/png;base64,",
            "data:image/png;base64,@@not-base64@@",
        ):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    validate_signature_image(value)


class SignCorrectiveActionTests(unittest.TestCase):
    def test_missing_action_is_not_found(self) -> None:
        fake_db = _ledger()
        with self.assertRaises(NotFoundError):
            _sign(fake_db, 999, actor=SUPERVISOR, role=SignerRole.SUPERVISOR)

    def test_sign_locks_the_action_row(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        _sign(fake_db, action.id, actor=SUPERVISOR, role=SignerRole.SUPERVISOR)
        self.assertIn((CorrectiveAction, action.id), fake_db.locked)

    def test_voided_check_precedes_duplicate_check(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db, supervisor_signature=SIGNATURE).action
        action.status = ActionStatus.VOIDED
        with self.assertRaises(InvalidStateError):
            _sign(fake_db, action.id, actor=SUPERVISOR, role=SignerRole.SUPERVISOR)

    def test_duplicate_check_precedes_image_validation(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db, supervisor_signature=SIGNATURE).action
        with self.assertRaises(DuplicateSignatureError):
            _sign(fake_db, action.id, actor=SUPERVISOR, role=SignerRole.SUPERVISOR, signature_data="garbage")

    def test_bad_image_is_validation_error(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        with self.assertRaises(ValidationError):
            _sign(fake_db, action.id, actor=SUPERVISOR, role=SignerRole.SUPERVISOR, signature_data="garbage")
        self.assertEqual(fake_db.objects[CorrectiveActionSignature], {})

    def test_non_employee_signature_keeps_status(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        signature, signed = _sign(fake_db, action.id, actor=HR, role=SignerRole.HR)
        self.assertEqual(signature.signer_id, HR.user_id)
        self.assertEqual(signed.status, ActionStatus.PENDING_SIGNATURE)

    def test_employee_acknowledgement(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        _signature, signed = _sign(fake_db, action.id, actor=EMPLOYEE_SIGNER, role=SignerRole.EMPLOYEE)
        self.assertEqual(signed.status, ActionStatus.ACKNOWLEDGED)
        self.assertIsNone(signed.employee_comments)

    def test_employee_dispute_stores_comments(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        _signature, signed = _sign(
            fake_db,
            action.id,
            actor=EMPLOYEE_SIGNER,
            role=SignerRole.EMPLOYEE,
            acknowledged=False,
            employee_comments="I disagree",
        )
        self.assertEqual(signed.status, ActionStatus.DISPUTED)
        self.assertEqual(signed.employee_comments, "I disagree")

    def test_racing_signatures_resolve_to_one_winner(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action

        signature, _signed = _sign(fake_db, action.id, actor=SUPERVISOR, role=SignerRole.SUPERVISOR)
        self.assertIsNotNone(signature.id)

        # The second request passed its lookup before the first committed.
        fake_db.hide_signatures_from_lookup = True
        fake_db.commit_error = IntegrityError(
            "INSERT INTO corrective_action_signatures",
            {},
            _DriverError("uq_corrective_action_signatures_action_role_signer"),
        )
        with self.assertRaises(DuplicateSignatureError):
            _sign(fake_db, action.id, actor=SUPERVISOR, role=SignerRole.SUPERVISOR)

        self.assertEqual(fake_db.rollbacks, 1)
        self.assertEqual(len(fake_db.objects[CorrectiveActionSignature]), 1)

    def test_foreign_key_failure_on_sign_is_not_a_duplicate(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action

        fake_db.commit_error = IntegrityError(
            "INSERT INTO corrective_action_signatures",
            {},
            _DriverError("corrective_action_signatures_signer_id_fkey"),
        )
        with self.assertRaises(IntegrityError):
            _sign(fake_db, action.id, actor=SUPERVISOR, role=SignerRole.SUPERVISOR)

        self.assertEqual(fake_db.rollbacks, 1)

    def test_same_signer_may_sign_in_another_role(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db, supervisor_signature=SIGNATURE).action
        signature, _signed = _sign(fake_db, action.id, actor=SUPERVISOR, role=SignerRole.WITNESS)
        self.assertEqual(signature.signer_role, SignerRole.WITNESS)


class VoidCorrectiveActionTests(unittest.TestCase):
    def test_permission_is_checked_first(self) -> None:
        fake_db = _ledger()
        with self.assertRaises(PermissionDeniedError):
            void_corrective_action(fake_db, actor=DSP, action_id=999, void_reason="x")  # type: ignore[arg-type]

    def test_short_reason_is_rejected_before_lookup(self) -> None:
        fake_db = _ledger()
        with self.assertRaises(ValidationError):
            void_corrective_action(fake_db, actor=HR, action_id=999, void_reason="  too short ")  # type: ignore[arg-type]

    def test_missing_action_is_not_found(self) -> None:
        fake_db = _ledger()
        with self.assertRaises(NotFoundError):
            void_corrective_action(fake_db, actor=HR, action_id=999, void_reason="Filed in error")  # type: ignore[arg-type]

    def test_void_records_who_when_and_why(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        action.status = ActionStatus.DISPUTED
        voided_at = datetime(2026, 5, 2, 15, 0, tzinfo=timezone.utc)

        voided, previous = void_corrective_action(
            fake_db,  # type: ignore[arg-type]
            actor=HR,
            action_id=action.id,
            void_reason="Entered for the wrong employee",
            now=voided_at,
        )

        self.assertEqual(previous, ActionStatus.DISPUTED)
        self.assertEqual(voided.status, ActionStatus.VOIDED)
        self.assertEqual(voided.voided_by_id, HR.user_id)
        self.assertEqual(voided.voided_at, voided_at)
        self.assertEqual(voided.void_reason, "Entered for the wrong employee")

    def test_void_twice_is_invalid_state(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        void_corrective_action(fake_db, actor=HR, action_id=action.id, void_reason="Filed in error")  # type: ignore[arg-type]
        with self.assertRaises(InvalidStateError):
            void_corrective_action(fake_db, actor=HR, action_id=action.id, void_reason="Filed in error")  # type: ignore[arg-type]


class LedgerScenarioTests(unittest.TestCase):
    def test_single_action_reaches_verbal_warning(self) -> None:
        fake_db = _ledger(default_points=6)
        _issue(fake_db)

        _employee, summary = get_points_summary(fake_db, employee_id=7, as_of=TODAY)  # type: ignore[arg-type]

        self.assertEqual(summary.current_points, 6)
        self.assertEqual(summary.resolution.level, DisciplineLevel.VERBAL_WARNING)
        self.assertEqual(summary.resolution.next_threshold, 10)

    def test_voided_action_drops_out_and_rejects_signatures(self) -> None:
        fake_db = _ledger(default_points=6)
        action = _issue(fake_db).action
        void_corrective_action(fake_db, actor=HR, action_id=action.id, void_reason="Filed in error")  # type: ignore[arg-type]

        _employee, summary = get_points_summary(fake_db, employee_id=7, as_of=TODAY)  # type: ignore[arg-type]
        self.assertEqual(summary.current_points, 0)
        self.assertEqual(summary.resolution.level, DisciplineLevel.GOOD_STANDING)

        with self.assertRaises(InvalidStateError):
            _sign(fake_db, action.id, actor=EMPLOYEE_SIGNER, role=SignerRole.EMPLOYEE)


class UpdateCorrectiveActionTests(unittest.TestCase):
    def test_issuer_may_edit_pending_action(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db, actor=DSP).action

        updated, fields = update_corrective_action(
            fake_db,  # type: ignore[arg-type]
            actor=DSP,
            action_id=action.id,
            payload=CorrectiveActionUpdate(incident_description="Arrived 40 minutes late", points_adjusted=2),
        )

        self.assertEqual(updated.incident_description, "Arrived 40 minutes late")
        self.assertEqual(updated.points_adjusted, 2)
        self.assertEqual(fields, ["incident_description", "points_adjusted"])

    def test_explicit_null_keeps_narrative_fields(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db, consequences_text="Final warning").action

        updated, fields = update_corrective_action(
            fake_db,  # type: ignore[arg-type]
            actor=HR,
            action_id=action.id,
            payload=CorrectiveActionUpdate(
                incident_description=None,
                consequences_text=None,
                mitigating_circumstances=None,
            ),
        )

        self.assertEqual(updated.incident_description, "Did not report for the 7am shift")
        self.assertEqual(updated.consequences_text, "Final warning")
        self.assertEqual(fields, ["mitigating_circumstances"])

    def test_issuer_cannot_edit_after_dispute(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db, actor=DSP).action
        action.status = ActionStatus.DISPUTED
        with self.assertRaises(PermissionDeniedError):
            update_corrective_action(
                fake_db,  # type: ignore[arg-type]
                actor=DSP,
                action_id=action.id,
                payload=CorrectiveActionUpdate(incident_description="changed"),
            )

    def test_acknowledged_action_is_locked_even_for_hr(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        action.status = ActionStatus.ACKNOWLEDGED
        with self.assertRaises(InvalidStateError):
            update_corrective_action(
                fake_db,  # type: ignore[arg-type]
                actor=HR,
                action_id=action.id,
                payload=CorrectiveActionUpdate(incident_description="changed"),
            )


class LedgerQueryTests(unittest.TestCase):
    def test_signature_status_keeps_first_signature_per_role(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db).action
        first = CorrectiveActionSignature(
            id=1,
            corrective_action_id=action.id,
            signer_role=SignerRole.SUPERVISOR,
            signer_id=5,
            signature_data=SIGNATURE,
            signed_at=datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc),
        )
        second = CorrectiveActionSignature(
            id=2,
            corrective_action_id=action.id,
            signer_role=SignerRole.SUPERVISOR,
            signer_id=6,
            signature_data=SIGNATURE,
            signed_at=datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc),
        )
        action.signatures = [second, first]

        status = get_signature_status(fake_db, action_id=action.id)  # type: ignore[arg-type]

        self.assertEqual(status.status, ActionStatus.PENDING_SIGNATURE)
        self.assertEqual([item.id for item in status.signatures], [1, 2])
        self.assertIs(status.by_role[SignerRole.SUPERVISOR], first)
        self.assertIsNone(status.by_role[SignerRole.EMPLOYEE])

    def test_detail_hides_foreign_actions_from_regular_staff(self) -> None:
        fake_db = _ledger()
        action = _issue(fake_db, actor=SUPERVISOR).action
        with self.assertRaises(PermissionDeniedError):
            get_action_detail(fake_db, actor=DSP, action_id=action.id, as_of=TODAY)  # type: ignore[arg-type]

    def test_detail_reports_points_before_this_action(self) -> None:
        fake_db = _ledger(default_points=4)
        _issue(fake_db)
        second = _issue(fake_db).action

        detail = get_action_detail(fake_db, actor=HR, action_id=second.id, as_of=TODAY)  # type: ignore[arg-type]

        self.assertEqual(detail.current_points, 8)
        self.assertEqual(detail.points_before, 4)
        self.assertEqual(len(detail.recent_history), 2)

    def test_list_scopes_regular_staff_to_own_actions(self) -> None:
        fake_db = _ledger()
        list_corrective_actions(fake_db, actor=DSP, now=datetime(2026, 5, 2, tzinfo=timezone.utc))  # type: ignore[arg-type]
        list_sql = next(sql for sql in fake_db.statements if "GROUP BY" not in sql)
        self.assertIn("corrective_actions.issued_by_id =", list_sql)

        fake_db.statements.clear()
        list_corrective_actions(fake_db, actor=HR, now=datetime(2026, 5, 2, tzinfo=timezone.utc))  # type: ignore[arg-type]
        list_sql = next(sql for sql in fake_db.statements if "GROUP BY" not in sql)
        self.assertNotIn("corrective_actions.issued_by_id =", list_sql)

    def test_list_stats(self) -> None:
        fake_db = _ledger()
        now = datetime(2026, 5, 2, tzinfo=timezone.utc)
        recent = _issue(fake_db).action
        recent.created_at = now - timedelta(days=1)
        older = _issue(fake_db).action
        older.created_at = now - timedelta(days=20)
        older.status = ActionStatus.ACKNOWLEDGED
        fake_db.at_risk_employee_ids = [7]

        actions, stats = list_corrective_actions(fake_db, actor=HR, now=now)  # type: ignore[arg-type]

        self.assertEqual(len(actions), 2)
        self.assertEqual(stats, {"total": 2, "pending_signatures": 1, "this_week": 1, "at_risk_employees": 1})

    def test_list_rejects_inverted_date_range(self) -> None:
        fake_db = _ledger()
        with self.assertRaises(ValidationError):
            list_corrective_actions(
                fake_db,  # type: ignore[arg-type]
                actor=HR,
                start_date=date(2026, 5, 2),
                end_date=date(2026, 5, 1),
            )

    def test_discipline_history_stats(self) -> None:
        fake_db = _ledger(default_points=6)
        category = fake_db.objects[ViolationCategory][3]
        first = _issue(fake_db).action
        first.violation_category = category
        second = _issue(fake_db, violation_date=date(2025, 11, 3)).action
        second.violation_category = category
        second.status = ActionStatus.VOIDED

        history = get_discipline_history(fake_db, employee_id=7, include_voided=True)  # type: ignore[arg-type]

        self.assertEqual(history.stats["total_actions"], 2)
        self.assertEqual(history.stats["active_actions"], 1)
        self.assertEqual(history.stats["voided_actions"], 1)
        self.assertEqual(history.stats["total_points_ever"], 6)
        self.assertEqual(history.stats["by_severity"]["SERIOUS"], 2)
        self.assertEqual(sorted(history.by_year), [2025, 2026])


if __name__ == "__main__":
    unittest.main()
