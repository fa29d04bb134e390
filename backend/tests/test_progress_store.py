from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from career_quest.models.entities import CareerQuestProgress
from career_quest.services.auth import hash_token
from career_quest.services.progress import build_progress_summary


def _progress(xp: int, completed: list[str]) -> dict:
    return {"level": 1 + xp // 100, "xp": xp, "completed_task_ids": completed, "proofs": {}}


def test_login_creates_progress_row_with_hashed_token(logged_in, db_session):
    data, _headers = logged_in
    row = (
        db_session.query(CareerQuestProgress)
        .filter(CareerQuestProgress.session_id == data["session_id"])
        .one()
    )
    assert row.revision == 0
    assert row.progress == {}
    assert row.token_hash == hash_token(data["session_token"])
    assert row.token_hash != data["session_token"]


def test_get_progress_is_stable_without_writes(client, logged_in):
    _data, headers = logged_in
    first = client.get("/career-quest/progress", headers=headers)
    second = client.get("/career-quest/progress", headers=headers)
    assert first.status_code == 200
    assert first.json()["revision"] == 0
    assert (first.json()["progress"], first.json()["revision"]) == (
        second.json()["progress"],
        second.json()["revision"],
    )


def test_put_with_current_revision_increments_and_stale_put_conflicts(client, logged_in):
    _data, headers = logged_in

    saved = client.put(
        "/career-quest/progress",
        headers=headers,
        json={"progress": _progress(40, ["p1-t1"]), "revision": 0},
    )
    assert saved.status_code == 200
    assert saved.json()["revision"] == 1

    stale = client.put(
        "/career-quest/progress",
        headers=headers,
        json={"progress": _progress(90, ["p1-t1", "p1-t2"]), "revision": 0},
    )
    assert stale.status_code == 409
    detail = stale.json()["detail"]
    assert detail["code"] == "REVISION_CONFLICT"
    assert detail["revision"] == 1
    assert detail["progress"]["xp"] == 40

    current = client.get("/career-quest/progress", headers=headers).json()
    assert current["revision"] == 1
    assert current["progress"]["completed_task_ids"] == ["p1-t1"]


def test_merge_and_retry_after_conflict(client, logged_in):
    _data, headers = logged_in
    client.put("/career-quest/progress", headers=headers, json={"progress": _progress(10, ["a"]), "revision": 0})
    conflict = client.put(
        "/career-quest/progress",
        headers=headers,
        json={"progress": _progress(20, ["b"]), "revision": 0},
    )
    server = conflict.json()["detail"]
    merged = _progress(30, sorted(set(server["progress"]["completed_task_ids"]) | {"b"}))
    retried = client.put(
        "/career-quest/progress",
        headers=headers,
        json={"progress": merged, "revision": server["revision"]},
    )
    assert retried.status_code == 200
    assert retried.json()["revision"] == 2


def test_updated_at_prefers_client_timestamp(client, logged_in):
    _data, headers = logged_in
    progress = {**_progress(5, []), "updated_at": "2026-10-19T10:00:00Z"}
    saved = client.put("/career-quest/progress", headers=headers, json={"progress": progress, "revision": 0})
    assert saved.json()["updated_at"] == "2026-10-19T10:00:00Z"


def test_missing_headers_is_unauthorized(client, logged_in):
    response = client.get("/career-quest/progress")
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "UNAUTHORIZED"


def test_unknown_session_is_unauthorized(client, logged_in):
    response = client.get(
        "/career-quest/progress",
        headers={"X-Career-Quest-Session-Id": "nope", "X-Career-Quest-Token": "abc"},
    )
    assert response.status_code == 401


def test_wrong_token_is_forbidden(client, logged_in):
    data, _headers = logged_in
    response = client.get(
        "/career-quest/progress",
        headers={"X-Career-Quest-Session-Id": data["session_id"], "X-Career-Quest-Token": "0" * 48},
    )
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "FORBIDDEN"


def test_second_login_rotates_token(client, logged_in):
    data, old_headers = logged_in
    again = client.post(
        "/career-quest/login",
        json={"email": "amina@example.com", "whatsapp": "22123456", "full_name": "amina ben salah"},
    )
    assert again.status_code == 200
    assert again.json()["session_id"] == data["session_id"]
    assert client.get("/career-quest/progress", headers=old_headers).status_code == 403


def test_invalid_progress_document_is_rejected_before_write(client, logged_in, db_session):
    _data, headers = logged_in
    response = client.put(
        "/career-quest/progress",
        headers=headers,
        json={"progress": {"level": 0, "xp": -5}, "revision": 0},
    )
    assert response.status_code == 422
    row = db_session.query(CareerQuestProgress).one()
    db_session.refresh(row)
    assert row.revision == 0


def test_progress_summary_keeps_three_most_recent_proofs():
    progress = {
        "level": 3,
        "xp": 250,
        "completed_task_ids": ["a", "b", "c", "d"],
        "proofs": {
            "a": {"submitted_at": "2026-10-01T10:00:00Z", "ai_score": 55, "ai_label": "Weak"},
            "b": {"submitted_at": "2026-10-04T10:00:00Z", "ai_score": 81, "ai_label": "Strong", "ai_tips": ["x"] * 9},
            "c": {"submitted_at": "2026-10-03T10:00:00Z", "ai_score": None},
            "d": {"submitted_at": "2026-10-02T10:00:00Z", "ai_score": 62, "ai_label": "OK"},
        },
    }
    summary = build_progress_summary(progress)
    assert summary["level"] == 3
    assert summary["xp"] == 250
    assert summary["completed_count"] == 4
    assert [item["task_id"] for item in summary["recent_proofs"]] == ["b", "c", "d"]
    assert summary["recent_proofs"][0]["ai_score"] == 81
    assert len(summary["recent_proofs"][0]["ai_tips"]) == 6
    assert summary["recent_proofs"][1]["ai_score"] is None


def test_progress_summary_defaults_for_empty_document():
    assert build_progress_summary(None) == {
        "level": 1,
        "xp": 0,
        "completed_count": 0,
        "recent_proofs": [],
    }


def test_only_sent_keys_are_stored(client, logged_in, db_session):
    _data, headers = logged_in
    saved = client.put("/career-quest/progress", headers=headers, json={"progress": {}, "revision": 0})
    assert saved.status_code == 200
    row = db_session.query(CareerQuestProgress).one()
    db_session.refresh(row)
    assert row.progress == {}


def test_proof_with_null_tips_is_accepted_and_extra_keys_survive(client, logged_in):
    _data, headers = logged_in
    progress = {
        "xp": 15,
        "streak_days": 3,
        "proofs": {"p1-t1": {"kind": "link", "url": "https://example.com", "ai_tips": None}},
    }
    saved = client.put("/career-quest/progress", headers=headers, json={"progress": progress, "revision": 0})
    assert saved.status_code == 200, saved.text
    stored = client.get("/career-quest/progress", headers=headers).json()["progress"]
    assert stored == progress
