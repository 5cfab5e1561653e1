"""Tests for the bulk MFA and password commands."""

import csv
from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from src.entraops.cli import app
from src.entraops.engine.retry import RetryingInvoker
from src.entraops.graph_clients.manager import (
    GraphAuthenticationError,
    GraphRequestError,
    GraphThrottledError,
)
from tests.fixtures.cli import cli_config_dir, write_users_csv
from tests.fixtures.graph import FakeGraph, methods_payload

runner = CliRunner()

USERS = [
    ("u1@contoso.com", "id-1"),
    ("u2@contoso.com", "id-2"),
    ("u3@contoso.com", "id-3"),
    ("u4@contoso.com", "id-4"),
    ("u5@contoso.com", "id-5"),
]


def _rows(path):
    with open(path, encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))


def _only(directory, pattern):
    matches = sorted(directory.glob(pattern))
    assert len(matches) == 1, matches
    return matches[0]


@pytest.fixture
def graph():
    return FakeGraph()


@pytest.fixture
def patched_graph(graph):
    with patch("src.entraops.commands.mfa.create_graph_client", return_value=graph), patch(
        "src.entraops.commands.password.create_graph_client", return_value=graph
    ):
        yield graph


class TestMfaExport:
    """Test entraops mfa export."""

    def test_export_from_csv(self, cli_config_dir, patched_graph, tmp_path):
        for _, object_id in USERS:
            patched_graph.routes[("GET", f"users/{object_id}/authentication/requirements")] = {
                "perUserMfaState": "enabled"
            }
            patched_graph.routes[("GET", f"users/{object_id}/authentication/methods")] = (
                methods_payload("passwordAuthenticationMethod", "fido2AuthenticationMethod")
            )
        input_file = write_users_csv(tmp_path / "users.csv", USERS)
        out = tmp_path / "out"

        result = runner.invoke(app, ["mfa", "export", str(input_file), "--output-dir", str(out)])

        assert result.exit_code == 0, result.output
        rows = _rows(_only(out, "mfa-export-report-*.csv"))
        assert [r["Identifier"] for r in sorted(rows, key=lambda r: r["Identifier"])] == [
            u for u, _ in USERS
        ]
        assert {r["PerUserMfaState"] for r in rows} == {"enabled"}
        assert {r["MfaMethods"] for r in rows} == {"fido2;password"}
        assert list(out.glob("mfa-export-failed-*.csv")) == []
        assert patched_graph.connect_calls == 1
        assert patched_graph.disconnect_calls == 1

    def test_export_all_users(self, cli_config_dir, patched_graph, tmp_path):
        patched_graph.pages["users"] = [
            {"id": "id-1", "userPrincipalName": "u1@contoso.com", "displayName": "U1"},
            {"id": "id-2", "userPrincipalName": "u2@contoso.com", "displayName": "U2"},
        ]
        out = tmp_path / "out"

        result = runner.invoke(
            app, ["mfa", "export", "--all-users", "--no-methods", "--output-dir", str(out)]
        )

        assert result.exit_code == 0, result.output
        rows = _rows(_only(out, "mfa-export-report-*.csv"))
        assert len(rows) == 2
        assert "DisplayName" in rows[0]
        assert patched_graph.connect_calls == 1
        assert patched_graph.disconnect_calls == 1

    def test_input_file_and_all_users_conflict(self, cli_config_dir, patched_graph, tmp_path):
        input_file = write_users_csv(tmp_path / "users.csv", USERS)

        result = runner.invoke(app, ["mfa", "export", str(input_file), "--all-users"])

        assert result.exit_code == 1
        assert "not both" in result.output

    def test_invalid_csv_exits_1(self, cli_config_dir, patched_graph, tmp_path):
        bad = tmp_path / "bad.csv"
        bad.write_text("DisplayName\nAlice\n", encoding="utf-8")

        result = runner.invoke(app, ["mfa", "export", str(bad), "--output-dir", str(tmp_path)])

        assert result.exit_code == 1
        assert "Missing identifying column" in result.output
        assert patched_graph.calls == []

    def test_missing_input_file(self, cli_config_dir, patched_graph, tmp_path):
        result = runner.invoke(app, ["mfa", "export", str(tmp_path / "nope.csv")])

        assert result.exit_code == 1
        assert "Input file not found" in result.output

    def test_connection_failure_exits_1(self, cli_config_dir, patched_graph, tmp_path):
        patched_graph.connect = Mock(side_effect=GraphAuthenticationError("AADSTS700016"))
        input_file = write_users_csv(tmp_path / "users.csv", USERS)
        out = tmp_path / "out"

        result = runner.invoke(app, ["mfa", "export", str(input_file), "--output-dir", str(out)])

        assert result.exit_code == 1
        assert "AADSTS700016" in result.output
        assert list(out.glob("*report*.csv")) == []
        assert list(out.glob("*failed*.csv")) == []
        assert not out.exists()

    def test_concurrency_out_of_range(self, cli_config_dir, patched_graph, tmp_path):
        input_file = write_users_csv(tmp_path / "users.csv", USERS)

        result = runner.invoke(app, ["mfa", "export", str(input_file), "--concurrency", "21"])

        assert result.exit_code != 0
        assert patched_graph.calls == []


class TestMfaDisable:
    """Test entraops mfa disable."""

    def test_prompt_declined(self, cli_config_dir, patched_graph, tmp_path):
        input_file = write_users_csv(tmp_path / "users.csv", USERS)

        result = runner.invoke(app, ["mfa", "disable", str(input_file)], input="n\n")

        assert result.exit_code == 0
        assert "Operation cancelled" in result.output
        assert patched_graph.calls == []

    def test_dry_run_makes_no_calls(self, cli_config_dir, patched_graph, tmp_path):
        input_file = write_users_csv(tmp_path / "users.csv", USERS)
        out = tmp_path / "out"

        result = runner.invoke(
            app, ["mfa", "disable", str(input_file), "--dry-run", "--output-dir", str(out)]
        )

        assert result.exit_code == 0, result.output
        assert patched_graph.calls == []
        rows = _rows(_only(out, "mfa-disable-report-*.csv"))
        assert {r["Status"] for r in rows} == {"skipped"}
        assert {r["ErrorMessage"] for r in rows} == {"Dry run: mfa-disable not executed"}

    def test_resume_skips_completed_users(self, cli_config_dir, patched_graph, tmp_path):
        for _, object_id in USERS:
            patched_graph.routes[("GET", f"users/{object_id}/authentication/requirements")] = {
                "perUserMfaState": "enabled"
            }
        input_file = write_users_csv(tmp_path / "users.csv", USERS)
        report = tmp_path / "previous.csv"
        report.write_text(
            "Identifier,UserPrincipalName,ObjectId,Status,ErrorMessage,Timestamp,RetryCount,PreviousState\n"
            "u1@contoso.com,u1@contoso.com,id-1,success,,2024-01-01T00:00:00+00:00,0,enabled\n"
            "u2@contoso.com,u2@contoso.com,id-2,failed,boom,2024-01-01T00:00:00+00:00,0,\n"
            "u3@contoso.com,u3@contoso.com,id-3,skipped,Per-user MFA already disabled,2024-01-01T00:00:00+00:00,0,disabled\n",
            encoding="utf-8",
        )

        result = runner.invoke(
            app,
            ["mfa", "disable", str(input_file), "--resume", str(report), "--force", "--output-dir", str(tmp_path)],
        )

        assert result.exit_code == 0, result.output
        patched = sorted(path for path, _ in patched_graph.calls_for("PATCH"))
        assert patched == [
            "users/id-2/authentication/requirements",
            "users/id-4/authentication/requirements",
            "users/id-5/authentication/requirements",
        ]
        assert len(_rows(report)) == 6


class TestMfaSyncGroup:
    """Test entraops mfa sync-group."""

    def test_group_id_required(self, cli_config_dir, patched_graph, tmp_path):
        input_file = write_users_csv(tmp_path / "users.csv", USERS)

        result = runner.invoke(app, ["mfa", "sync-group", str(input_file)])

        assert result.exit_code != 0

    def test_sync_adds_capable_users(self, cli_config_dir, patched_graph, tmp_path):
        for _, object_id in USERS[:2]:
            patched_graph.routes[("GET", f"users/{object_id}/authentication/methods")] = (
                methods_payload("microsoftAuthenticatorAuthenticationMethod")
            )
        input_file = write_users_csv(tmp_path / "users.csv", USERS[:2])
        out = tmp_path / "out"

        result = runner.invoke(
            app, ["mfa", "sync-group", str(input_file), "--group-id", "g-1", "--output-dir", str(out)]
        )

        assert result.exit_code == 0, result.output
        added = [path for path, _ in patched_graph.calls_for("POST") if path.startswith("groups/")]
        assert added == ["groups/g-1/members/$ref", "groups/g-1/members/$ref"]


class TestPasswordReset:
    """Test entraops password reset."""

    def test_partial_failure_exits_2_and_writes_failed_items(
        self, cli_config_dir, patched_graph, tmp_path
    ):
        for object_id in ("id-2", "id-4"):
            patched_graph.routes[("PATCH", f"users/{object_id}")] = GraphRequestError(
                400, "Request_BadRequest", "The specified password does not comply with password complexity requirements."
            )
        input_file = write_users_csv(tmp_path / "users.csv", USERS)
        out = tmp_path / "out"

        result = runner.invoke(
            app, ["password", "reset", str(input_file), "--force", "--output-dir", str(out)]
        )

        assert result.exit_code == 2, result.output
        failed_rows = _rows(_only(out, "password-reset-failed-*.csv"))
        assert sorted(r["UserPrincipalName"] for r in failed_rows) == [
            "u2@contoso.com",
            "u4@contoso.com",
        ]
        assert list(failed_rows[0].keys()) == ["UserPrincipalName", "ObjectId"]

        report_rows = _rows(_only(out, "password-reset-report-*.csv"))
        statuses = {r["Identifier"]: r["Status"] for r in report_rows}
        assert statuses["u1@contoso.com"] == "success"
        assert statuses["u2@contoso.com"] == "failed"
        successful = [r for r in report_rows if r["Status"] == "success"]
        assert all(len(r["NewPassword"]) == 16 for r in successful)

    def test_no_password_in_report(self, cli_config_dir, patched_graph, tmp_path):
        input_file = write_users_csv(tmp_path / "users.csv", USERS[:2])
        out = tmp_path / "out"

        result = runner.invoke(
            app,
            [
                "password",
                "reset",
                str(input_file),
                "--force",
                "--no-password-in-report",
                "--length",
                "20",
                "--output-dir",
                str(out),
            ],
        )

        assert result.exit_code == 0, result.output
        rows = _rows(_only(out, "password-reset-report-*.csv"))
        assert {r["NewPassword"] for r in rows} == {""}
        sent = [kwargs["json"]["passwordProfile"]["password"] for _, kwargs in patched_graph.calls_for("PATCH")]
        assert all(len(p) == 20 for p in sent)

    @pytest.mark.parametrize("extra_args", [[], ["--no-password-in-report"]])
    def test_input_passwords_stay_out_of_report(
        self, cli_config_dir, patched_graph, tmp_path, extra_args
    ):
        input_file = write_users_csv(
            tmp_path / "users.csv",
            [("u1@contoso.com", "id-1", "S3cret!Pass"), ("u2@contoso.com", "id-2", "")],
            header="UserPrincipalName,ObjectId,Password",
        )
        patched_graph.routes[("PATCH", "users/id-2")] = GraphRequestError(
            403, "Authorization_RequestDenied", "Insufficient privileges"
        )
        out = tmp_path / "out"

        result = runner.invoke(
            app, ["password", "reset", str(input_file), "--force", "--output-dir", str(out)] + extra_args
        )

        assert result.exit_code == 2, result.output
        sent = dict(patched_graph.calls_for("PATCH"))
        report_file = _only(out, "password-reset-report-*.csv")
        assert "S3cret!Pass" not in report_file.read_text(encoding="utf-8")
        rows = {r["Identifier"]: r for r in _rows(report_file)}
        assert rows["u1@contoso.com"]["Password"] == ""
        assert rows["u1@contoso.com"]["PasswordSource"] == "input"
        failed_rows = _rows(_only(out, "password-reset-failed-*.csv"))
        assert failed_rows == [
            {"UserPrincipalName": "u2@contoso.com", "ObjectId": "id-2", "Password": ""}
        ]
        assert sent["users/id-1"]["json"]["passwordProfile"]["password"] == "S3cret!Pass"

    def test_resume_with_report_of_other_command_exits_1(
        self, cli_config_dir, patched_graph, tmp_path
    ):
        input_file = write_users_csv(tmp_path / "users.csv", USERS[:2])
        report = tmp_path / "mfa-report.csv"
        report.write_text(
            "Identifier,UserPrincipalName,ObjectId,Status,ErrorMessage,Timestamp,RetryCount,PreviousState\n"
            "u1@contoso.com,u1@contoso.com,id-1,success,,2024-01-01T00:00:00+00:00,0,enabled\n",
            encoding="utf-8",
        )
        before = report.read_text(encoding="utf-8")

        result = runner.invoke(
            app, ["password", "reset", str(input_file), "--force", "--resume", str(report)]
        )

        assert result.exit_code == 1
        assert "Unexpected columns: PreviousState" in result.output
        assert patched_graph.calls_for("PATCH") == []
        assert report.read_text(encoding="utf-8") == before

    def test_throttled_user_is_retried(self, cli_config_dir, patched_graph, tmp_path):
        attempts = {"count": 0}
        sleeps = []

        def flaky_patch(**kwargs):
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise GraphThrottledError("throttled", retry_after=0)
            return {}

        patched_graph.routes[("PATCH", "users/id-1")] = flaky_patch
        input_file = write_users_csv(tmp_path / "users.csv", USERS[:1])

        out = tmp_path / "out"

        with patch(
            "src.entraops.engine.driver.RetryingInvoker",
            side_effect=lambda **kwargs: RetryingInvoker(sleep=sleeps.append, **kwargs),
        ):
            result = runner.invoke(
                app, ["password", "reset", str(input_file), "--force", "--output-dir", str(out)]
            )

        assert result.exit_code == 0, result.output
        assert attempts["count"] == 2
        assert sleeps == [2.0]
        rows = _rows(_only(out, "password-reset-report-*.csv"))
        assert rows[0]["RetryCount"] == "1"
