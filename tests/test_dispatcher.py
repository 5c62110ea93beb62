import io
import json
import sys
import textwrap
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from probe.actions import (
    BUILTIN_ACTIONS,
    RegistryDispatcher,
    SubprocessDispatcher,
    build_dispatcher,
)
from probe.actions.plugin import serve
from probe.errors import (
    ActionFailedError,
    ActionTimeoutError,
    DispatchError,
    UnknownActionError,
)
from probe.settings import Settings

PLUGIN = textwrap.dedent(
    """
    import json, sys, time

    action = sys.argv[1]
    params = json.loads(sys.stdin.read() or "{}")
    if action == "echo":
        print(json.dumps({"result": {"request": params, "response": {"body": "ok"}}}))
    elif action == "fail":
        print(json.dumps({"error": {"kind": "ActionFailedError", "message": "smtp 550"}}))
        sys.exit(1)
    elif action == "crash":
        sys.stderr.write("segfault-ish")
        sys.exit(3)
    elif action == "garbage":
        print("not json")
    elif action == "sleep":
        time.sleep(5)
    else:
        print(json.dumps({"error": {"kind": "UnknownActionError", "message": action}}))
        sys.exit(1)
    """
)


@pytest.fixture
def plugin(tmp_path):
    path = tmp_path / "plugin.py"
    path.write_text(PLUGIN)
    return SubprocessDispatcher([sys.executable, str(path)])


class TestRegistryDispatcher:
    def test_routes_by_id(self):
        d = RegistryDispatcher({"a": lambda p: {"got": p}})
        assert d.dispatch("a", {"x": 1}) == {"got": {"x": 1}}

    def test_unknown_action(self):
        with pytest.raises(UnknownActionError):
            RegistryDispatcher({}).dispatch("missing", {})

    def test_action_exception_is_wrapped(self):
        def bad(params):
            raise KeyError("url")

        with pytest.raises(ActionFailedError) as exc:
            RegistryDispatcher({"bad": bad}).dispatch("bad", {})
        assert isinstance(exc.value.__cause__, KeyError)
        assert exc.value.action == "bad"

    def test_action_failure_passes_through(self):
        def refuse(params):
            raise ActionFailedError("refuse", "nope")

        with pytest.raises(ActionFailedError, match="nope"):
            RegistryDispatcher({"refuse": refuse}).dispatch("refuse", {})

    def test_non_mapping_result(self):
        with pytest.raises(ActionFailedError, match="expected a mapping"):
            RegistryDispatcher({"s": lambda p: "text"}).dispatch("s", {})

    def test_input_is_copied(self):
        seen = {}

        def mutate(params):
            params["added"] = True
            seen.update(params)
            return {}

        original = {"a": 1}
        RegistryDispatcher({"m": mutate}).dispatch("m", original)
        assert original == {"a": 1}
        assert seen == {"a": 1, "added": True}

    def test_timeout(self):
        release = threading.Event()
        with RegistryDispatcher({"hang": lambda p: release.wait(5) and {}}) as d:
            try:
                with pytest.raises(ActionTimeoutError):
                    d.dispatch("hang", {}, timeout=0.1)
            finally:
                release.set()

    def test_within_timeout(self):
        with RegistryDispatcher({"fast": lambda p: {"ok": True}}) as d:
            assert d.dispatch("fast", {}, timeout=5) == {"ok": True}

    def test_concurrent_timed_calls_share_one_pool(self, monkeypatch):
        created = []

        class SlowPool(ThreadPoolExecutor):
            def __init__(self, *args, **kwargs):
                created.append(self)
                time.sleep(0.05)
                super().__init__(*args, **kwargs)

        monkeypatch.setattr("probe.actions.dispatcher.ThreadPoolExecutor", SlowPool)
        barrier = threading.Barrier(4)
        errors = []

        def call(d):
            barrier.wait()
            try:
                assert d.dispatch("a", {}, timeout=1) == {"ok": True}
            except Exception as e:
                errors.append(e)

        with RegistryDispatcher({"a": lambda p: {"ok": True}}) as d:
            threads = [threading.Thread(target=call, args=(d,)) for _ in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert errors == []
        assert len(created) == 1
        assert created[0]._shutdown


class TestSubprocessDispatcher:
    def test_result_envelope(self, plugin):
        out = plugin.dispatch("echo", {"to": "a@example.test"})
        assert out == {"request": {"to": "a@example.test"}, "response": {"body": "ok"}}

    def test_error_envelope(self, plugin):
        with pytest.raises(ActionFailedError, match="smtp 550"):
            plugin.dispatch("fail", {})

    def test_unknown_action(self, plugin):
        with pytest.raises(UnknownActionError):
            plugin.dispatch("whatever", {})

    def test_crash_without_output(self, plugin):
        with pytest.raises(DispatchError, match="no output"):
            plugin.dispatch("crash", {})

    def test_unparsable_output(self, plugin):
        with pytest.raises(DispatchError, match="invalid plugin output"):
            plugin.dispatch("garbage", {})

    def test_timeout(self, plugin):
        with pytest.raises(ActionTimeoutError):
            plugin.dispatch("sleep", {}, timeout=0.5)

    def test_missing_executable(self, tmp_path):
        d = SubprocessDispatcher([str(tmp_path / "no-such-plugin")])
        with pytest.raises(DispatchError, match="cannot start plugin"):
            d.dispatch("echo", {})

    def test_builtin_plugin_command(self):
        d = SubprocessDispatcher(Settings().plugin_command)
        out = d.dispatch("hello", {"name": "sub"})
        assert out["response"] == {"message": "Hello sub!"}


class TestServe:
    def test_success(self):
        stdout = io.StringIO()
        code = serve("hello", io.StringIO('{"name": "x"}'), stdout)
        assert code == 0
        assert json.loads(stdout.getvalue()) == {
            "result": {"request": {"name": "x"}, "response": {"message": "Hello x!"}}
        }

    def test_unknown_action(self):
        stdout = io.StringIO()
        assert serve("nope", io.StringIO("{}"), stdout) == 1
        assert json.loads(stdout.getvalue())["error"]["kind"] == "UnknownActionError"

    def test_invalid_input(self):
        stdout = io.StringIO()
        assert serve("hello", io.StringIO("[1, 2"), stdout) == 1
        assert "invalid JSON input" in json.loads(stdout.getvalue())["error"]["message"]

    def test_action_exception(self):
        def bad(params):
            raise ValueError("broken")

        stdout = io.StringIO()
        assert serve("bad", io.StringIO("{}"), stdout, registry={"bad": bad}) == 1
        assert json.loads(stdout.getvalue())["error"] == {"kind": "ValueError", "message": "broken"}


class TestBuildDispatcher:
    def test_builtin(self):
        d = build_dispatcher(Settings())
        assert isinstance(d, RegistryDispatcher)
        assert d.actions == sorted(BUILTIN_ACTIONS)

    def test_subprocess(self):
        d = build_dispatcher(Settings(dispatcher="subprocess", plugin_command=("probe-plugins",)))
        assert isinstance(d, SubprocessDispatcher)
        assert d.command == ["probe-plugins"]
