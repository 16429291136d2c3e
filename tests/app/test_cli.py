from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from bookingsync.domain.gap_detection import ProjectGapReport
from bookingsync.domain.status_refresh import StatusRefreshResult
from bookingsync.ui import cli


@pytest.fixture
def captured_bodies(monkeypatch: pytest.MonkeyPatch) -> list[object]:
    bodies: list[object] = []

    def fake_trigger(body: object) -> dict[str, object]:
        bodies.append(body)
        return {"success": True, "events": 0}

    monkeypatch.setattr(cli, "handle_sync_trigger", fake_trigger)
    return bodies


def test_sync_defaults_to_empty_body(
    captured_bodies: list[object], capsys: pytest.CaptureFixture[str]
) -> None:
    cli.main(["sync"])

    assert captured_bodies == [{}]
    assert json.loads(capsys.readouterr().out) == {"success": True, "events": 0}


def test_sync_flags_build_trigger_body(captured_bodies: list[object]) -> None:
    cli.main(
        [
            "sync",
            "--project-id",
            "p1",
            "--start",
            "2025-07-01",
            "--end",
            "2025-07-02T10:00:00",
            "--reason",
            "deep",
        ]
    )

    assert captured_bodies == [
        {
            "projectId": "p1",
            "triggerReason": "deep",
            "startDate": "2025-07-01",
            "endDate": "2025-07-02T10:00:00",
        }
    ]


def test_sync_lookback_resolves_absolute_window(captured_bodies: list[object]) -> None:
    cli.main(["sync", "--end", "2025-07-02T00:00:00Z", "--lookback-hours", "2.5"])

    assert captured_bodies == [
        {
            "startDate": datetime(2025, 7, 1, 21, 30, tzinfo=UTC).isoformat(),
            "endDate": datetime(2025, 7, 2, tzinfo=UTC).isoformat(),
        }
    ]


def test_sync_payload_is_passed_through(captured_bodies: list[object]) -> None:
    cli.main(["sync", "--payload", '{"projectId": "p9", "triggerReason": "gap_fill"}'])

    assert captured_bodies == [{"projectId": "p9", "triggerReason": "gap_fill"}]


@pytest.mark.parametrize(
    "argv",
    [
        ["sync", "--payload", "{not json"],
        ["sync", "--payload", "[1, 2]"],
        ["sync", "--lookback-hours", "-1"],
        ["sync", "--start", "not-a-date", "--lookback-hours", "1"],
        ["connect", "--project-id", "p1", "--expires-at", "tomorrow"],
    ],
)
def test_invalid_options_exit_with_code_two(
    captured_bodies: list[object], argv: list[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)

    assert excinfo.value.code == 2
    assert captured_bodies == []


def test_failed_sync_exits_with_code_one(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli, "handle_sync_trigger", lambda body: {"success": False, "error": "boom"}
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["sync"])

    assert excinfo.value.code == 1


def test_refresh_status_prints_stats(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(
        cli,
        "refresh_calendly_statuses",
        lambda project_id: StatusRefreshResult(project_id=project_id, checked=4, updated=1),
    )

    cli.main(["refresh-status", "--project-id", "p1"])

    output = json.loads(capsys.readouterr().out)
    assert output["projectId"] == "p1"
    assert output["stats"] == {"eventsChecked": 4, "eventsUpdated": 1, "errors": 0}


def test_detect_gaps_prints_reports(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    requested: list[str | None] = []

    def fake_detect(project_id: str | None) -> list[ProjectGapReport]:
        requested.append(project_id)
        return [ProjectGapReport(project_id="p1", recent_events=3)]

    monkeypatch.setattr(cli, "detect_calendly_gaps", fake_detect)

    cli.main(["detect-gaps"])

    assert requested == [None]
    assert json.loads(capsys.readouterr().out) == {
        "success": True,
        "projectsAnalyzed": 1,
        "projects": [{"projectId": "p1", "recentEvents": 3, "gaps": []}],
    }


def test_connect_reads_token_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_connect(project_id: str, **kwargs: object) -> object:
        captured.update(kwargs, project_id=project_id)
        return type("Integration", (), {"project_id": project_id})()

    monkeypatch.setattr(cli, "connect_calendly_project", fake_connect)
    monkeypatch.setenv(cli.TOKEN_ENV_VAR, "secret")

    cli.main(
        [
            "connect",
            "--project-id",
            "p1",
            "--timezone",
            "America/Chicago",
            "--expires-at",
            "2026-01-01T00:00:00Z",
        ]
    )

    assert captured == {
        "project_id": "p1",
        "access_token": "secret",
        "timezone": "America/Chicago",
        "expires_at": datetime(2026, 1, 1, tzinfo=UTC),
    }


def test_connect_without_token_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(cli.TOKEN_ENV_VAR, raising=False)
    monkeypatch.setattr(cli, "connect_calendly_project", lambda *a, **k: None)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["connect", "--project-id", "p1"])

    assert excinfo.value.code == 1


def test_webhook_passes_body_and_project(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    calls: list[tuple[object, object]] = []

    def fake_webhook(body: object, *, project_id: str | None) -> dict[str, object]:
        calls.append((body, project_id))
        return {"success": True, "events": 1}

    monkeypatch.setattr(cli, "handle_webhook", fake_webhook)

    cli.main(["webhook", "--payload", '{"event": "invitee.created"}', "--project-id", "p1"])

    assert calls == [({"event": "invitee.created"}, "p1")]
    assert json.loads(capsys.readouterr().out) == {"success": True, "events": 1}


def test_webhook_rejects_non_object_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "handle_webhook", lambda *a, **k: {"success": True})

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["webhook", "--payload", '"invitee.created"'])

    assert excinfo.value.code == 2


def test_failed_webhook_exits_with_code_one(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli, "handle_webhook", lambda body, **kwargs: {"success": False, "error": "boom"}
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["webhook", "--payload", "{}"])

    assert excinfo.value.code == 1
