from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from sync_app.importer.pipeline import CheckOutcome, ImportSourceCheckService
from sync_app.models import db
from sync_app.models.importer.schema import ImportRun, ImportSource, ImportSourceState

FIXED_NOW = datetime(2026, 3, 1, 12, 30, 45, 987654, tzinfo=timezone.utc)


class StubDetector:
    def __init__(self, *, changes=True, run_result=True, fail_on=None, message="boom"):
        self.changes = changes
        self.run_result = run_result
        self.fail_on = fail_on
        self.message = message
        self.run_calls = 0

    def provides_changes(self):
        if self.fail_on == "provides_changes":
            raise RuntimeError(self.message)
        return self.changes

    def run(self):
        self.run_calls += 1
        if self.fail_on == "run":
            raise RuntimeError(self.message)
        return self.run_result


def _service(detector, **kwargs):
    return ImportSourceCheckService(detector_factory=lambda source: detector, clock=lambda: FIXED_NOW, **kwargs)


def _reload(source):
    db.session.expire_all()
    return db.session.get(ImportSource, source.id)


def test_new_source_starts_unknown(source_factory):
    source = source_factory()
    assert source.import_state is ImportSourceState.UNKNOWN
    assert source.last_attempt is None


def test_changes_without_commit_are_pending(source_factory):
    source = source_factory()
    detector = StubDetector(changes=True)

    assert _service(detector).check_for_changes(source) is True

    stored = _reload(source)
    assert stored.import_state is ImportSourceState.PENDING_CHANGES
    assert stored.last_error_message is None
    assert detector.run_calls == 0


def test_changes_with_successful_commit_are_in_sync(source_factory):
    source = source_factory()
    detector = StubDetector(changes=True, run_result=True)

    assert _service(detector).run_import(source) is True
    assert detector.run_calls == 1
    assert _reload(source).import_state is ImportSourceState.IN_SYNC


def test_unconfirmed_commit_stays_pending(source_factory):
    source = source_factory()
    detector = StubDetector(changes=True, run_result=False)

    outcome = _service(detector).check(source, commit=True)

    assert outcome == CheckOutcome(ImportSourceState.PENDING_CHANGES, had_changes=True)
    assert _reload(source).import_state is ImportSourceState.PENDING_CHANGES


def test_no_changes_is_in_sync(source_factory):
    source = source_factory()

    assert _service(StubDetector(changes=False)).check_for_changes(source) is False
    assert _reload(source).import_state is ImportSourceState.IN_SYNC


@pytest.mark.parametrize("fail_on", ["provides_changes", "run"])
def test_failures_end_in_failing_with_message(source_factory, fail_on):
    source = source_factory()
    detector = StubDetector(fail_on=fail_on, message="provider exploded")

    outcome = _service(detector).check(source, commit=True)

    assert outcome.failed
    assert outcome.had_changes is (fail_on == "run")
    stored = _reload(source)
    assert stored.import_state is ImportSourceState.FAILING
    assert stored.last_error_message == "provider exploded"
    assert stored.last_attempt.replace(tzinfo=timezone.utc) == FIXED_NOW.replace(microsecond=0)


def test_failure_without_message_uses_exception_name(source_factory):
    source = source_factory()

    def factory(_source):
        raise KeyError()

    service = ImportSourceCheckService(detector_factory=factory, clock=lambda: FIXED_NOW)
    service.check_for_changes(source)

    assert _reload(source).last_error_message == "KeyError"


def test_detector_construction_failure_is_absorbed(source_factory):
    source = source_factory()

    def factory(_source):
        raise ValueError("cannot build detector")

    service = ImportSourceCheckService(detector_factory=factory, clock=lambda: FIXED_NOW)

    assert service.check_for_changes(source) is False
    assert _reload(source).import_state is ImportSourceState.FAILING


def test_without_commit_never_reaches_in_sync_via_commit(source_factory):
    source = source_factory()
    detector = StubDetector(changes=True, run_result=True)

    _service(detector).check_for_changes(source, commit=False)

    assert detector.run_calls == 0
    assert _reload(source).import_state is ImportSourceState.PENDING_CHANGES


def test_two_cycles_pending_then_in_sync_clears_error(source_factory):
    source = source_factory()
    source.last_error_message = "stale failure"
    db.session.commit()

    _service(StubDetector(changes=True)).check_for_changes(source)
    first = _reload(source)
    assert first.import_state is ImportSourceState.PENDING_CHANGES
    assert first.last_error_message is None

    _service(StubDetector(changes=False)).check_for_changes(first)
    second = _reload(source)
    assert second.import_state is ImportSourceState.IN_SYNC
    assert second.last_error_message is None


def test_success_after_failure_clears_error(source_factory):
    source = source_factory()
    _service(StubDetector(fail_on="provides_changes")).check_for_changes(source)
    assert _reload(source).import_state is ImportSourceState.FAILING

    _service(StubDetector(changes=False)).check_for_changes(source)
    stored = _reload(source)
    assert stored.import_state is ImportSourceState.IN_SYNC
    assert stored.last_error_message is None


def test_last_attempt_uses_second_resolution(source_factory):
    source = source_factory()
    _service(StubDetector(changes=False)).check_for_changes(source)

    assert _reload(source).last_attempt.replace(tzinfo=timezone.utc) == datetime(
        2026, 3, 1, 12, 30, 45, tzinfo=timezone.utc
    )


def test_unchanged_state_is_not_stored():
    source = ImportSource(source_name="mocked", provider_class="json")
    source.import_state = ImportSourceState.IN_SYNC
    source.last_attempt = FIXED_NOW.replace(microsecond=0)
    session = MagicMock()

    service = ImportSourceCheckService(
        session=session,
        detector_factory=lambda _source: StubDetector(changes=False),
        clock=lambda: FIXED_NOW,
    )
    service.check_for_changes(source)

    session.commit.assert_not_called()
    session.add.assert_not_called()


def test_identical_cycle_on_reloaded_source_is_not_stored(source_factory, monkeypatch):
    source = source_factory()
    service = _service(StubDetector(changes=False))
    service.check_for_changes(source)

    reloaded = _reload(source)
    assert reloaded.last_attempt.tzinfo is None

    stored = []
    store = service._store
    monkeypatch.setattr(service, "_store", lambda target: (stored.append(target), store(target)))
    service.check_for_changes(reloaded)

    assert stored == []
    assert _reload(source).import_state is ImportSourceState.IN_SYNC


def test_changed_state_is_stored():
    source = ImportSource(source_name="mocked", provider_class="json")
    session = MagicMock()

    service = ImportSourceCheckService(
        session=session,
        detector_factory=lambda _source: StubDetector(changes=False),
        clock=lambda: FIXED_NOW,
    )
    service.check_for_changes(source)

    session.add.assert_called_once_with(source)
    session.commit.assert_called_once()


def test_failure_rolls_back_before_state_is_written():
    source = ImportSource(source_name="mocked", provider_class="json")
    session = MagicMock()

    service = ImportSourceCheckService(
        session=session,
        detector_factory=lambda _source: StubDetector(fail_on="run"),
        clock=lambda: FIXED_NOW,
    )
    service.check_for_changes(source, commit=True)

    session.rollback.assert_called_once()
    session.commit.assert_called_once()
    assert source.import_state is ImportSourceState.FAILING


def test_database_error_while_storing_is_raised():
    source = ImportSource(source_name="mocked", provider_class="json")
    session = MagicMock()
    session.commit.side_effect = OperationalError("UPDATE", {}, Exception("locked"))

    service = ImportSourceCheckService(
        session=session,
        detector_factory=lambda _source: StubDetector(changes=False),
        clock=lambda: FIXED_NOW,
    )
    with pytest.raises(OperationalError):
        service.check_for_changes(source)
    session.rollback.assert_called_once()


def test_check_all_isolates_failing_sources(source_factory):
    healthy = source_factory(source_name="healthy")
    broken = source_factory(source_name="broken")

    def factory(source):
        if source.source_name == "broken":
            return StubDetector(fail_on="provides_changes", message="cannot connect")
        return StubDetector(changes=True)

    service = ImportSourceCheckService(detector_factory=factory, clock=lambda: FIXED_NOW)
    outcomes = service.check_all()

    assert list(outcomes) == ["broken", "healthy"]
    assert outcomes["broken"].failed
    assert outcomes["broken"].error_message == "cannot connect"
    assert outcomes["healthy"].state is ImportSourceState.PENDING_CHANGES
    assert _reload(healthy).import_state is ImportSourceState.PENDING_CHANGES
    assert _reload(broken).import_state is ImportSourceState.FAILING


def test_full_cycle_with_real_detector(source_factory, modifier_factory):
    source = source_factory(rows=[{"name": "alice"}, {"name": "bob"}])
    modifier_factory(source, "uppercase", "name")
    service = ImportSourceCheckService()

    assert service.check_for_changes(source) is True
    assert _reload(source).import_state is ImportSourceState.PENDING_CHANGES
    assert db.session.query(ImportRun).count() == 0

    assert service.run_import(source) is True
    assert _reload(source).import_state is ImportSourceState.IN_SYNC
    run = db.session.query(ImportRun).one()
    assert set(run.rows_json) == {"ALICE", "BOB"}

    assert service.check_for_changes(source) is False
    assert _reload(source).import_state is ImportSourceState.IN_SYNC


def test_full_cycle_with_missing_file(source_factory, tmp_path):
    source = source_factory(settings={"file_path": str(tmp_path / "gone.json")})

    assert ImportSourceCheckService().check_for_changes(source) is False

    stored = _reload(source)
    assert stored.import_state is ImportSourceState.FAILING
    assert "JSON file not found" in stored.last_error_message
    assert stored.last_attempt is not None
