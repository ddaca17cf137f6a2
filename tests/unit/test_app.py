"""Unit tests for the command-line entry point."""

import datetime as dt
from unittest.mock import patch

import pytest

from app.app import build_parser, main, run
from controller.app_controller import AppController
from core.exceptions import StoreError
from storage.memory import InMemoryStore


@pytest.fixture
def controller():
    return AppController(InMemoryStore())


class TestCommands:
    """Command dispatch against an in-memory store."""

    def test_projects(self, controller, capsys):
        p = controller.create_project("Website", "2024-01-01", "2024-06-30")
        assert run(controller, build_parser().parse_args(["projects"])) == 0
        assert f"{p.id}  Website  2024-01-01 .. 2024-06-30" in capsys.readouterr().out

    def test_milestones_shows_status(self, controller, capsys):
        p = controller.create_project("Website", "2024-01-01", "2024-06-30")
        t = controller.add_task(p.id)
        controller.update_task(t.id, "planned_start_date", "2024-01-01")
        controller.create_milestone(p.id, "Alpha", [t.id])

        args = build_parser().parse_args(["milestones", p.id, "--today", "2024-02-01"])
        assert args.today == dt.date(2024, 2, 1)
        run(controller, args)
        out = capsys.readouterr().out
        assert "Alpha  [Started]" in out
        assert "tasks=1" in out

    def test_reconcile(self, controller, capsys):
        p = controller.create_project("Website", "2024-01-01", "2024-06-30")
        run(controller, build_parser().parse_args(["reconcile", p.id]))
        assert "0 milestone(s) rewritten" in capsys.readouterr().out


class TestMain:
    """Login and error reporting."""

    def test_store_failure_exits_nonzero(self, capsys):
        with patch("app.app.PocketBaseClient.login", side_effect=StoreError("Login failed")):
            assert main(["--log-level", "CRITICAL", "projects"]) == 1
        assert "Login failed" in capsys.readouterr().err
