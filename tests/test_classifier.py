"""
tests/test_classifier.py

Benign vs real faults, and the log-suppression helper.
"""

import errno
import logging

import pytest

from ragstack.classifier import ErrorClassifier
from ragstack.errors import HealthCheckFault, ProcessFault


def missing(executable):
    return ProcessFault(
        f"Executable not found: {executable}",
        command=[executable, "compose", "down"],
        missing_executable=True,
    )


@pytest.mark.parametrize("executable", ["docker", "podman", "nerdctl"])
def test_exit_code_zero_is_always_benign(executable):
    fault = ProcessFault("exited", command=[executable], exit_code=0)
    assert ErrorClassifier(executable).is_benign(fault)


@pytest.mark.parametrize("executable", ["docker", "podman"])
@pytest.mark.parametrize("exit_code", [1, 2, 125, 255, -9])
def test_non_zero_exit_is_never_benign(executable, exit_code):
    fault = ProcessFault("exited", command=[executable], exit_code=exit_code)
    assert not ErrorClassifier(executable).is_benign(fault)


def test_missing_executable_is_benign_for_override():
    assert ErrorClassifier("podman").is_benign(missing("podman"))


def test_missing_executable_is_real_for_default():
    assert not ErrorClassifier("docker").is_benign(missing("docker"))


def test_raw_file_not_found_for_executable():
    fault = FileNotFoundError(errno.ENOENT, "No such file or directory", "docker")
    assert ErrorClassifier("podman").is_benign(fault)
    assert not ErrorClassifier("docker").is_benign(fault)


def test_raw_file_not_found_for_other_path_is_real():
    fault = FileNotFoundError(errno.ENOENT, "No such file or directory", "/srv/stack/compose.yaml")
    assert not ErrorClassifier("podman").is_benign(fault)


def test_other_faults_are_real():
    classifier = ErrorClassifier("podman")
    assert not classifier.is_benign(RuntimeError("boom"))
    assert not classifier.is_benign(HealthCheckFault("bad report"))


def test_report_logs_only_real_faults(caplog):
    classifier = ErrorClassifier("podman")
    with caplog.at_level(logging.ERROR, logger="ragstack.classifier"):
        assert classifier.report(missing("podman"), "Stop failed") is False
        assert caplog.records == []

        assert classifier.report(RuntimeError("boom"), "Stop failed") is True
    assert len(caplog.records) == 1
    assert "Stop failed: boom" in caplog.records[0].getMessage()
