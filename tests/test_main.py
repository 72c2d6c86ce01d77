"""Tests for the command line entry point in image_janitor/main.py"""

from unittest.mock import patch

from conftest import FakeRuntime, creation_event

from image_janitor import main as main_module
from image_janitor.orchestrator import EXIT_OK, EXIT_STARTUP_FAILURE, EXIT_STREAM_FAILURE
from image_janitor.runtime import EventStream, EventStreamError, RuntimeUnavailableError

TCP_ENV = {"DOCKER_HOST": "tcp://127.0.0.1:2375", "CONFIG_FILE": "/nonexistent/config.yaml"}


def run_main(argv, environ, runtime):
    with patch.dict("os.environ", environ, clear=True), patch(
        "image_janitor.utils.health_checks._default_runtime_factory", return_value=runtime
    ), patch("image_janitor.main.signal.signal"):
        return main_module.main(argv)


class TestParseArguments:
    def test_defaults_to_run(self):
        assert main_module.parse_arguments([]).command == "run"

    def test_config_file(self):
        args = main_module.parse_arguments(["--config-file", "custom.yaml", "check"])
        assert args.config_file == "custom.yaml"
        assert args.command == "check"


class TestMain:
    def test_run_until_stream_closes(self):
        runtime = FakeRuntime()
        image_id = runtime.add_image("sha256:a", repo_tags=["app:v1"])
        runtime.events = [creation_event("app:v1")]

        assert run_main(["run"], TCP_ENV, runtime) == EXIT_OK
        assert image_id in runtime.images

    def test_unreachable_daemon_fails_startup(self):
        runtime = FakeRuntime()
        runtime.failing.add("ping")

        assert run_main(["run"], TCP_ENV, runtime) == EXIT_STARTUP_FAILURE

    def test_invalid_config_fails_startup(self):
        assert run_main(["run"], {**TCP_ENV, "HM_UNTIL": "0"}, FakeRuntime()) == EXIT_STARTUP_FAILURE

    def test_subscribe_failure_fails_startup(self):
        runtime = FakeRuntime()
        with patch.object(
            runtime, "subscribe_creation_events", side_effect=RuntimeUnavailableError("subscribe", Exception("eof"))
        ):
            assert run_main(["run"], TCP_ENV, runtime) == EXIT_STARTUP_FAILURE

    def test_broken_stream_exit_code(self):
        runtime = FakeRuntime()

        def events():
            raise EventStreamError("unexpected EOF")
            yield  # pragma: no cover

        with patch.object(runtime, "subscribe_creation_events", return_value=EventStream(events())):
            assert run_main(["run"], TCP_ENV, runtime) == EXIT_STREAM_FAILURE

    def test_check_command(self, capsys):
        assert run_main(["check"], TCP_ENV, FakeRuntime()) == EXIT_OK
        assert "Health Check Report" in capsys.readouterr().out

    def test_config_command(self, capsys):
        assert run_main(["config"], {**TCP_ENV, "HM_UNTIL": "42"}, FakeRuntime()) == EXIT_OK
        assert "42" in capsys.readouterr().out
