"""
视觉运行时模块 - 一次性初始化的就绪门

所有检测调用在使用 OpenCV 之前都要等待就绪门完成。初始化只执行一次，
所有等待者共享同一个结果（或同一个失败）。超时后门进入 FAILED 状态，
不会自动重试，调用方可以显式调用 reset() 再试。
"""
import enum
import importlib
import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional

from optmeasure.errors import InitializationError
from optmeasure.utils import RUNTIME_INIT_TIMEOUT_S, RUNTIME_MAX_THREADS

logger = logging.getLogger(__name__)


class GateState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


def load_opencv(max_threads: int = RUNTIME_MAX_THREADS):
    """导入 OpenCV 并做一次自检，返回 cv2 模块"""
    cv = importlib.import_module("cv2")
    if max_threads > 0:
        cv.setNumThreads(max_threads)
    # 构建信息可读说明原生库已加载
    cv.getBuildInformation()
    logger.info("OpenCV %s 已就绪", cv.__version__)
    return cv


class RuntimeGate:
    """视觉运行时就绪门

    Args:
        initializer: 返回运行时句柄的可调用对象，默认导入 OpenCV
        timeout: 初始化超时(秒)
    """

    def __init__(self, initializer: Optional[Callable[[], Any]] = None,
                 timeout: float = RUNTIME_INIT_TIMEOUT_S):
        self._initializer = initializer or load_opencv
        self.timeout = timeout
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self._timer: Optional[threading.Timer] = None
        self._state = GateState.UNINITIALIZED

    @property
    def state(self) -> GateState:
        return self._state

    def start(self) -> Future:
        """启动初始化（幂等），返回共享的 Future"""
        with self._lock:
            if self._future is not None:
                return self._future
            future = Future()
            self._future = future
            self._state = GateState.INITIALIZING
            self._timer = threading.Timer(self.timeout, self._expire, args=(future,))
            self._timer.daemon = True
            self._timer.start()

        worker = threading.Thread(target=self._run, args=(future,),
                                  name="optmeasure-runtime-init", daemon=True)
        worker.start()
        return future

    def _run(self, future: Future):
        try:
            handle = self._initializer()
        except Exception as e:
            logger.error("视觉运行时初始化失败: %s", e)
            self._settle(future, error=InitializationError(f"视觉运行时初始化失败: {e}"))
        else:
            self._settle(future, result=handle)

    def _expire(self, future: Future):
        self._settle(future, error=InitializationError(
            f"视觉运行时在 {self.timeout:g}s 内未就绪"))

    def _settle(self, future: Future, result: Any = None,
                error: Optional[BaseException] = None):
        """只接受第一个结果，后到的结果被忽略"""
        with self._lock:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
                if future is self._future:
                    self._state = GateState.FAILED
            else:
                future.set_result(result)
                if future is self._future:
                    self._state = GateState.READY
            if self._timer is not None and future is self._future:
                self._timer.cancel()

    def wait(self):
        """等待就绪并返回运行时句柄

        Raises:
            InitializationError: 初始化失败或超时
        """
        future = self.start()
        try:
            # 超时由就绪门自身的计时器负责，这里多留一点余量
            return future.result(timeout=self.timeout + 1.0)
        except FutureTimeoutError as e:
            raise InitializationError(f"视觉运行时在 {self.timeout:g}s 内未就绪") from e

    def reset(self):
        """丢弃失败状态，允许调用方手动重试"""
        with self._lock:
            if self._state == GateState.INITIALIZING:
                raise InitializationError("初始化进行中，无法重置")
            if self._timer is not None:
                self._timer.cancel()
            self._future = None
            self._timer = None
            self._state = GateState.UNINITIALIZED


class ReadyGate(RuntimeGate):
    """直接使用已导入运行时的就绪门（测试或嵌入场景）"""

    def __init__(self, handle: Any):
        super().__init__(initializer=lambda: handle)
        future = Future()
        future.set_result(handle)
        self._future = future
        self._state = GateState.READY
