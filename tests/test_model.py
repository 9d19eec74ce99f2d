from datetime import datetime

from wldd.model import (
    DependencyEntry,
    DependencyStatus,
    FileReport,
    PipelineState,
    RunReport,
)


def test_run_report_timestamp_utc_format():
    r = RunReport()
    assert r.timestamp_utc.endswith("Z")
    datetime.fromisoformat(r.timestamp_utc.replace("Z", "+00:00"))


def test_file_report_defaults():
    f = FileReport(path="a.exe")
    assert f.state == PipelineState.UNPARSED
    assert f.failed is False
    assert f.is_dynamic is False


def test_run_report_ok_tracks_every_file():
    good = FileReport(
        path="a.exe",
        state=PipelineState.RESOLVED,
        dependencies=[DependencyEntry(index=0, name="A.dll", status=DependencyStatus.FOUND, found_in="/x")],
    )
    failed = FileReport(path="b.exe", state=PipelineState.FAILED, error={"code": "E_PE_NOT_A_PE_FILE", "message": "m"})
    assert RunReport(files=[good]).ok is True
    assert RunReport(files=[good, failed]).ok is False


def test_run_report_round_trip_validation():
    """A dumped report can be re-validated by the model."""
    f = FileReport(
        path="sample.exe",
        state=PipelineState.RESOLVED,
        image={"machine": 0x8664, "is_pe32_plus": True},
        dependencies=[
            DependencyEntry(index=0, name="KERNEL32.dll", status=DependencyStatus.FOUND, found_in="C:/Windows/System32"),
            DependencyEntry(index=1, status=DependencyStatus.ERROR, error={"code": "E_PE_MALFORMED_NAME", "message": "m"}),
        ],
    )
    r = RunReport(tool={"name": "wldd"}, files=[f])

    r2 = RunReport.model_validate(r.model_dump())
    r3 = RunReport.model_validate_json(r.model_dump_json())

    assert r2.files[0].dependencies[0].found_in == "C:/Windows/System32"
    assert r3.files[0].dependencies[1].status == DependencyStatus.ERROR
    assert r3.files[0].state == PipelineState.RESOLVED
