"""视觉运行时就绪门：单次初始化、失败共享、超时与手动重试。"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from optmeasure.errors import InitializationError
from optmeasure.runtime import GateState, ReadyGate, RuntimeGate


class CountingInit:
    def __init__(self, handle="cv", delay=0.0, failures=0):
        self.handle = handle
        self.delay = delay
        self.failures = failures
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            attempt = self.calls
        time.sleep(self.delay)
        if attempt <= self.failures:
            raise RuntimeError("native library missing")
        return self.handle


def test_concurrent_waiters_share_one_initialization():
    init = CountingInit(delay=0.2)
    gate = RuntimeGate(init, timeout=5.0)

    with ThreadPoolExecutor(max_workers=8) as pool:
        handles = list(pool.map(lambda _: gate.wait(), range(8)))

    assert handles == ["cv"] * 8
    assert init.calls == 1
    assert gate.state is GateState.READY


def test_failure_is_shared_and_not_retried():
    init = CountingInit(failures=1)
    gate = RuntimeGate(init, timeout=5.0)

    with pytest.raises(InitializationError):
        gate.wait()
    with pytest.raises(InitializationError):
        gate.wait()
    assert init.calls == 1
    assert gate.state is GateState.FAILED


def test_reset_allows_manual_retry():
    init = CountingInit(failures=1)
    gate = RuntimeGate(init, timeout=5.0)
    with pytest.raises(InitializationError):
        gate.wait()

    gate.reset()
    assert gate.state is GateState.UNINITIALIZED
    assert gate.wait() == "cv"
    assert init.calls == 2


def test_timeout_fails_gate():
    release = threading.Event()

    def slow():
        release.wait(5.0)
        return "late"

    gate = RuntimeGate(slow, timeout=0.2)
    started = time.monotonic()
    try:
        with pytest.raises(InitializationError):
            gate.wait()
        assert time.monotonic() - started < 2.0
        assert gate.state is GateState.FAILED
    finally:
        release.set()

    # 超时后迟到的结果被忽略
    time.sleep(0.1)
    assert gate.state is GateState.FAILED
    with pytest.raises(InitializationError):
        gate.wait()


def test_reset_while_initializing_is_refused():
    release = threading.Event()
    gate = RuntimeGate(lambda: release.wait(5.0), timeout=5.0)
    gate.start()
    try:
        with pytest.raises(InitializationError):
            gate.reset()
    finally:
        release.set()
    assert gate.wait() is True


def test_ready_gate():
    handle = object()
    gate = ReadyGate(handle)
    assert gate.state is GateState.READY
    assert gate.wait() is handle
