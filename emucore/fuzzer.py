"""Multi-threaded coverage-guided fuzzing loop."""

from __future__ import annotations

import os
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from .input_generator import InputGenerator

CoverageHandler = Callable[[int], None]

_REPORT_INTERVAL = 1.0


class ExecutionResult(Enum):
    """Outcome of running one input."""

    SUCCESS = 0
    ERROR = 1


class Executer(ABC):
    """Runs inputs and reports covered addresses."""

    @abstractmethod
    def execute(self, data: bytes, coverage_handler: CoverageHandler) -> ExecutionResult:
        """Run ``data``, calling ``coverage_handler`` for each newly covered address."""


class FuzzingHandler(ABC):
    """Creates executers and decides when fuzzing ends."""

    @abstractmethod
    def make_executer(self) -> Executer:
        """Create an executer for one worker thread."""

    def stop(self) -> bool:
        """Return True to end fuzzing."""
        return False


class _FuzzingContext:
    def __init__(self, generator: InputGenerator, handler: FuzzingHandler) -> None:
        self.generator = generator
        self.handler = handler
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._executions = 0
        self.failure: Optional[BaseException] = None

    def stop(self) -> None:
        self._stop.set()

    def should_stop(self) -> bool:
        if self._stop.is_set():
            return True
        if not self.handler.stop():
            return False
        self._stop.set()
        return True

    def count_execution(self) -> None:
        with self._lock:
            self._executions += 1

    def take_executions(self) -> int:
        with self._lock:
            executions, self._executions = self._executions, 0
            return executions


def _perform_fuzzing_iteration(context: _FuzzingContext, executer: Executer) -> None:
    context.count_execution()

    def handle_input(data: bytes) -> int:
        score = 0

        def on_coverage(_address: int) -> None:
            nonlocal score
            score += 1

        result = executer.execute(data, on_coverage)
        if result == ExecutionResult.ERROR:
            print("Found error!")
            context.stop()
        return score

    context.generator.access_input(handle_input)


def _worker(context: _FuzzingContext) -> None:
    try:
        executer = context.handler.make_executer()
        while not context.should_stop():
            _perform_fuzzing_iteration(context, executer)
    except BaseException as error:  # noqa: BLE001 - handed back to run()
        if context.failure is None:
            context.failure = error
        context.stop()


def run(handler: FuzzingHandler, concurrency: Optional[int] = None) -> None:
    """Fuzz with ``concurrency`` worker threads until stopped, printing statistics every second.

    An exception raised in a worker ends fuzzing and is raised again here.
    """
    if concurrency is None:
        concurrency = os.cpu_count() or 1

    generator = InputGenerator()
    context = _FuzzingContext(generator, handler)
    workers = [threading.Thread(target=_worker, args=(context,), daemon=True) for _ in range(concurrency)]
    for worker in workers:
        worker.start()

    try:
        while not context.should_stop():
            time.sleep(_REPORT_INTERVAL)
            executions = context.take_executions()
            highest = generator.get_highest_scorer()
            average = generator.get_average_score()
            print(f"Executions/s: {executions} - Score: {highest.score:x} - Avg: {average:.3f}")
    finally:
        context.stop()
        for worker in workers:
            worker.join()

    if context.failure is not None:
        raise context.failure