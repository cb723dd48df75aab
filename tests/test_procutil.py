import os
import subprocess
import sys

from dnsvard.procutil import running


def test_current_process_is_running():
    assert running(os.getpid()) is True


def test_zero_pid_is_not_running():
    assert running(0) is False


def test_negative_pid_is_not_running():
    assert running(-5) is False


def test_finished_child_is_not_running():
    child = subprocess.Popen([sys.executable, "-c", "pass"])
    child.wait()
    assert running(child.pid) is False