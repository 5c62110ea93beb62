from probe.dsl import job, step
from probe.model import ErrorInfo, ExecutionContext, JobRun, StepResult
from probe.ui.console import Console, format_step_report

from conftest import make_result


def test_report_lists_request_and_response_fields():
    result = make_result(
        2,
        request={"method": "GET", "headers": {"Accept": "*/*"}},
        response={"status": 200, "bodyjson": {"a": 1}},
    )
    assert format_step_report(result) == "\n".join(
        [
            "---------- Step 2 ----------",
            "Request:",
            "  method: 'GET'",
            "  headers:",
            "    Accept: '*/*'",
            "Response:",
            "  status: 200",
            "  bodyjson:",
            "    a: 1",
        ]
    )


def test_report_falls_back_to_raw_dump():
    result = make_result(0, output={"value": [1, 2]})
    assert format_step_report(result) == "---------- Step 0 ----------\n{'value': [1, 2]}"


def test_report_includes_error():
    result = StepResult(index=1, name="s", uses="http", error=ErrorInfo("ActionFailedError", "refused"))
    report = format_step_report(result)
    assert report.splitlines()[-1] == "Error: ActionFailedError: refused"


def test_quiet_step_line(capsys):
    Console(verbose=False).print_step("J1", make_result(0))
    assert capsys.readouterr().out == "[J1] STEP 0: step 0 (echo) ok\n"


def test_verbose_step_report(capsys):
    Console(verbose=True).print_step("J1", make_result(0, request={"a": 1}, response={"b": 2}))
    out = capsys.readouterr().out
    assert out.startswith("---------- Step 0 ----------\nRequest:\n  a: 1\n")


def test_results_summary(capsys):
    ok = make_result(0)
    bad = StepResult(index=1, name="s", uses="x", error=ErrorInfo("E", "m"))
    runs = [
        JobRun(job("single", step("hello")), 0, ExecutionContext({}, [ok])),
        JobRun(job("rep", step("hello"), repeat=2), 1, ExecutionContext({}, [ok, bad])),
    ]
    Console().print_results(runs)
    out = capsys.readouterr().out
    assert "  single: 1 step(s), SUCCESS" in out
    assert "  rep #2: 2 step(s), 1 FAILED" in out


def test_errors_go_to_stderr(capsys):
    Console().print_error("Failed to load workflow", "bad file", details=["name: Field required"])
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "ERROR: Failed to load workflow" in captured.err
    assert "  name: Field required" in captured.err
