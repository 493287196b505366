# tests/test_ingest.py
import json
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

import walkfeed.services.ingest as ingest_mod
from walkfeed.models import ScraperStatus, Walk
from walkfeed.services.ingest import IngestState, decode_batch, ingest_batch, PayloadError
from walkfeed.services.query import read_snapshot
from walkfeed.services.records import WalkRecord
from walkfeed.services.status import RunOutcome, get_run_status, record_run_outcome

T1 = datetime(2025, 3, 1, 6, 0, tzinfo=timezone.utc)
T2 = datetime(2025, 3, 2, 6, 0, tzinfo=timezone.utc)
T3 = datetime(2025, 3, 3, 6, 0, tzinfo=timezone.utc)


def _walk(title="Hill Walk", url="https://x/w/1", when=datetime(2025, 3, 12, 10, tzinfo=timezone.utc), **kw):
    return WalkRecord.build(title=title, details_url=url, walk_date=when, **kw).to_payload()


def _batch(n):
    return [_walk(title=f"Walk {i}", url=f"https://x/w/{i}") for i in range(n)]


async def _all_walks(session):
    res = await session.execute(select(Walk).order_by(Walk.id))
    return list(res.scalars().all())


async def _count(session):
    res = await session.execute(select(func.count()).select_from(Walk))
    return res.scalar_one()


async def _status_rows(session):
    res = await session.execute(select(func.count()).select_from(ScraperStatus))
    return res.scalar_one()


def _ingest(with_session, body, now=None):
    return with_session(ingest_batch, body, now)


def test_batch_is_written(fresh_db, with_session):
    result = _ingest(with_session, json.dumps(_batch(3)).encode(), T1)
    assert result.state == IngestState.SUCCEEDED
    assert result.written == 3 and result.skipped == 0
    assert result.message == "Successfully processed 3 walks."
    assert with_session(_count) == 3

    status = with_session(get_run_status)
    assert status.last_run_status == "success"
    assert status.last_successful_run == T1
    assert status.last_error_message is None


def test_same_batch_twice_is_idempotent(fresh_db, with_session):
    body = json.dumps(_batch(4))
    _ingest(with_session, body, T1)
    first = {w.id: (w.title, w.walk_date, w.description) for w in with_session(_all_walks)}
    _ingest(with_session, body, T2)
    second = {w.id: (w.title, w.walk_date, w.description) for w in with_session(_all_walks)}
    assert first == second
    assert len(second) == 4


def test_changed_listing_updates_in_place(fresh_db, with_session):
    _ingest(with_session, [_walk(description="Old text")], T1)
    _ingest(with_session, [_walk(description="New text")], T2)
    [row] = with_session(_all_walks)
    assert row.description == "New text"
    assert row.last_seen == T2
    assert row.walk_date == datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


def test_one_bad_record_does_not_sink_the_batch(fresh_db, with_session):
    items = _batch(10)
    items[4]["walk_date"] = "not-a-date"
    result = _ingest(with_session, items, T1)
    assert result.succeeded
    assert result.written == 9
    assert result.skipped == 1
    assert with_session(_count) == 9
    assert with_session(get_run_status).last_run_status == "success"


def test_rows_and_status_are_persisted_with_utc_timestamps(fresh_db, with_session):
    result = _ingest(with_session, _batch(5), T1)
    assert result.written == 5 and result.skipped == 0
    rows = with_session(_all_walks)
    assert len(rows) == 5
    for row in rows:
        assert row.walk_date == datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)
        assert row.last_seen == T1
    status = with_session(get_run_status)
    assert status is not None
    assert status.last_successful_run == T1
    assert status.updated_at.tzinfo is not None


def test_naive_and_offset_dates_land_on_the_same_instant(fresh_db, with_session):
    items = _batch(2)
    items[0]["walk_date"] = "2025-07-01T09:00:00"
    items[1]["walk_date"] = "2025-07-01T10:00:00+01:00"
    _ingest(with_session, items, T1)
    assert {row.walk_date for row in with_session(_all_walks)} == {datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)}


def test_out_of_range_date_skips_only_that_record(fresh_db, with_session):
    items = _batch(10)
    items[3]["walk_date"] = "9999-12-31T23:00:00-05:00"
    result = _ingest(with_session, items, T1)
    assert result.succeeded
    assert result.written == 9
    assert result.skipped == 1
    assert with_session(_count) == 9
    assert with_session(get_run_status).last_run_status == "success"


def test_failed_write_skips_only_that_record(fresh_db, with_session, monkeypatch):
    real_upsert = ingest_mod.upsert_walk
    items = _batch(5)
    bad_id = items[2]["id"]

    async def flaky(session, walk, now):
        if walk.id == bad_id:
            raise IntegrityError("INSERT INTO walks", {}, Exception("constraint failed"))
        await real_upsert(session, walk, now)

    monkeypatch.setattr(ingest_mod, "upsert_walk", flaky)
    result = _ingest(with_session, items, T1)
    assert result.state == IngestState.SUCCEEDED
    assert result.written == 4
    assert result.skipped == 1
    assert bad_id not in {row.id for row in with_session(_all_walks)}
    assert with_session(get_run_status).last_run_status == "success"


def test_blank_fields_become_sentinels(fresh_db, with_session):
    item = _walk()
    item.update(group_name="", difficulty=None, location="  ", description=None)
    _ingest(with_session, [item], T1)
    [row] = with_session(_all_walks)
    assert row.group_name == "unknown"
    assert row.difficulty == "unknown"
    assert row.location == "not specified"
    assert row.description == ""


@pytest.mark.parametrize(
    "body",
    [
        b"{not json",
        b'{"id": "x"}',
        b'[1, 2]',
        b'[{"title": "t", "details_url": "u"}]',
        b"",
    ],
)
def test_malformed_payload_fails_the_run(fresh_db, with_session, body):
    result = _ingest(with_session, body, T1)
    assert result.state == IngestState.FAILED
    assert result.client_error
    status = with_session(get_run_status)
    assert status.last_run_status == "failure"
    assert status.last_error_message == result.message
    assert status.last_successful_run is None
    assert with_session(_count) == 0


def test_failure_keeps_last_success_and_hides_freshness(fresh_db, with_session):
    _ingest(with_session, _batch(2), T1)
    _ingest(with_session, b"oops", T2)
    status = with_session(get_run_status)
    assert status.last_run_status == "failure"
    assert status.last_successful_run == T1
    assert status.updated_at == T2

    snapshot = with_session(read_snapshot)
    assert len(snapshot["data"]) == 2
    assert snapshot["lastScrapeTime"] is None

    _ingest(with_session, _batch(1), T3)
    assert with_session(read_snapshot)["lastScrapeTime"] == "2025-03-03T06:00:00Z"


def test_lost_store_fails_the_run(fresh_db, with_session, monkeypatch):
    async def boom(session, walk, now):
        raise OperationalError("INSERT INTO walks", {}, Exception("server closed the connection"))

    monkeypatch.setattr(ingest_mod, "upsert_walk", boom)
    result = _ingest(with_session, _batch(3), T1)
    assert result.state == IngestState.FAILED
    assert not result.client_error
    assert result.message.startswith("Database unavailable")
    assert result.written == 0
    status = with_session(get_run_status)
    assert status.last_run_status == "failure"
    assert status.last_successful_run is None


def test_status_row_stays_single_and_versioned(fresh_db, with_session):
    assert with_session(get_run_status) is None
    with_session(record_run_outcome, RunOutcome.SUCCESS, None, T1)
    with_session(record_run_outcome, RunOutcome.FAILURE, "boom", T2)
    with_session(record_run_outcome, RunOutcome.SUCCESS, None, T3)
    assert with_session(_status_rows) == 1
    status = with_session(get_run_status)
    assert status.version == 3
    assert status.last_successful_run == T3
    assert status.last_error_message is None


def test_last_successful_run_is_non_decreasing(fresh_db, with_session):
    seen = []
    for now, body in ((T1, _batch(1)), (T2, b"bad"), (T3, _batch(2))):
        _ingest(with_session, body, now)
        seen.append(with_session(get_run_status).last_successful_run)
    assert seen == [T1, T1, T3]


def test_decode_batch():
    assert decode_batch(b'[{"id": "a", "title": "t", "details_url": "u"}]')[0]["id"] == "a"
    with pytest.raises(PayloadError):
        decode_batch(b"\xff\xfe")
    with pytest.raises(PayloadError):
        decode_batch(None)
