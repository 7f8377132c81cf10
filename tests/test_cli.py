"""Tests for the waypoint CLI: app resolution and the routes table."""

import sys
import types

import pytest

from waypoint.app import App
from waypoint.cli import main
from waypoint.cli._resolve import resolve_app


def _demo_app() -> App:
    app = App()

    async def guard(request, next):
        return await next(request)

    @app.get("/users/{id}", name="users.show", middleware=["throttle:5,1", guard])
    def show_user(id: int):
        return {"id": id}

    app.redirect("/old", "/new")

    @app.fallback
    def missing(fallback: str):
        return ({"missing": fallback}, 404)

    return app


@pytest.fixture
def _fake_app_module(monkeypatch: pytest.MonkeyPatch) -> None:
    """Register a fake module with a waypoint App on sys.modules."""
    mod = types.ModuleType("_fake_waypoint_app")
    mod.app = _demo_app()  # type: ignore[attr-defined]
    mod.create_app = _demo_app  # type: ignore[attr-defined]
    mod.not_an_app = "just a string"  # type: ignore[attr-defined]
    mod.broken_factory = lambda: 1 / 0  # type: ignore[attr-defined]
    mod.wrong_factory = lambda: "not an app"  # type: ignore[attr-defined]
    mod.container = types.SimpleNamespace(app=_demo_app())  # type: ignore[attr-defined]
    monkeypatch.setitem(sys.modules, "_fake_waypoint_app", mod)


@pytest.mark.usefixtures("_fake_app_module")
class TestResolveApp:
    def test_explicit_attribute(self) -> None:
        assert isinstance(resolve_app("_fake_waypoint_app:app"), App)

    def test_default_attribute(self) -> None:
        assert isinstance(resolve_app("_fake_waypoint_app"), App)

    def test_factory(self) -> None:
        assert isinstance(resolve_app("_fake_waypoint_app:create_app"), App)

    def test_not_an_app(self) -> None:
        with pytest.raises(TypeError, match="not a waypoint.App"):
            resolve_app("_fake_waypoint_app:not_an_app")

    def test_failing_factory(self) -> None:
        with pytest.raises(TypeError, match="raised an error"):
            resolve_app("_fake_waypoint_app:broken_factory")

    def test_factory_returning_other_type(self) -> None:
        with pytest.raises(TypeError, match="returned str"):
            resolve_app("_fake_waypoint_app:wrong_factory")

    def test_dotted_attribute(self) -> None:
        assert isinstance(resolve_app("_fake_waypoint_app:container.app"), App)

    def test_missing_attribute(self) -> None:
        with pytest.raises(AttributeError):
            resolve_app("_fake_waypoint_app:nope")

    def test_missing_module(self) -> None:
        with pytest.raises(ModuleNotFoundError):
            resolve_app("_no_such_module_anywhere:app")


@pytest.mark.usefixtures("_fake_app_module")
class TestRoutesCommand:
    def test_prints_table(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["routes", "_fake_waypoint_app:app"])
        out = capsys.readouterr().out
        lines = out.splitlines()
        assert lines[0].split() == ["METHOD", "PATH", "NAME", "HANDLER", "MIDDLEWARE"]
        show = next(line for line in lines if "/users/{id}" in line)
        assert "users.show" in show
        assert "show_user" in show
        assert "throttle:5,1, guard" in show
        assert any("/old" in line and "DELETE|GET|PATCH|POST|PUT" in line for line in lines)
        assert any("/{fallback:path}" in line and "missing" in line for line in lines)

    def test_name_filter(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["routes", "_fake_waypoint_app:app", "--name", "users.*"])
        out = capsys.readouterr().out
        assert "/users/{id}" in out
        assert "/old" not in out
        assert "fallback" not in out

    def test_empty_app(self, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
        mod = types.ModuleType("_empty_waypoint_app")
        mod.app = App()  # type: ignore[attr-defined]
        monkeypatch.setitem(sys.modules, "_empty_waypoint_app", mod)
        main(["routes", "_empty_waypoint_app"])
        assert "No routes registered." in capsys.readouterr().out

    def test_bad_import_exits(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["routes", "_fake_waypoint_app:not_an_app"])
        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_configuration_error_exits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        mod = types.ModuleType("_bad_waypoint_app")
        app = App()
        app.get("/x", middleware="unknown")(lambda: "x")
        mod.app = app  # type: ignore[attr-defined]
        monkeypatch.setitem(sys.modules, "_bad_waypoint_app", mod)
        with pytest.raises(SystemExit):
            main(["routes", "_bad_waypoint_app:app"])


class TestMain:
    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
        assert "routes" in capsys.readouterr().out
