"""
Streaming pipeline core: sources, sinks and transform stages.

Every producing stage owns a Publisher holding a ping-pong pair of sample
blocks.  The producer fills the *write* block, then calls produce(), which

  1. joins the previous asynchronous batch (re-raising any sink error),
  2. clears the old *read* block and swaps the pair,
  3. submits every asynchronous sink to the stage's executor,
  4. calls every synchronous sink inline, in registration order.

So at most one asynchronous batch is ever in flight per stage and no sink
sees its block being overwritten.  A slow sink stalls the producer at its
next produce(); that is the only flow control there is.

Capabilities are split the same way:

  Produces   output side   (Publisher helper)
  Consumes   input side    (Upstream helper)

Source = Produces, Sink = Consumes, Transform = both.
"""
from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Callable, List, Optional, Type

import numpy as np

from .errors import ConfigurationError, UnimplementedStageError
from .samples import ComplexSamples, Samples
from .timing import TimeReport

log = logging.getLogger(__name__)

TransformFunction = Callable[[Samples, Samples], None]


@dataclass
class _Subscription:
    sink: object
    asynchronous: bool


class Publisher:
    """Output side of a stage: buffer pair, subscriber list and async join."""

    def __init__(self, name: str, sample_type: Type[Samples], executor: Optional[Executor] = None) -> None:
        self.name = name
        self.sample_type = sample_type
        self.executor = executor
        self.write: Samples = sample_type()
        self.read: Samples = sample_type()
        self._subscriptions: List[_Subscription] = []
        self._pending: List[Future] = []
        self._lock = threading.Lock()
        self.sink_wait_time = TimeReport(f"{name} sink wait")
        self.sink_process_time = TimeReport(f"{name} sink process")

    def register(self, sink, asynchronous: bool = False) -> None:
        if asynchronous and self.executor is None:
            raise ConfigurationError(
                f"{self.name}: asynchronous sink {_name_of(sink)} needs an executor"
            )
        with self._lock:
            self._subscriptions.append(_Subscription(sink, asynchronous))
        log.debug("%s -> %s%s", self.name, _name_of(sink), " (async)" if asynchronous else "")

    def unregister(self, sink) -> bool:
        with self._lock:
            before = len(self._subscriptions)
            self._subscriptions = [s for s in self._subscriptions if s.sink is not sink]
            removed = len(self._subscriptions) != before
        if removed:
            log.debug("%s -x- %s", self.name, _name_of(sink))
        return removed

    @property
    def sinks(self) -> List[object]:
        with self._lock:
            return [s.sink for s in self._subscriptions]

    def wait_async(self) -> None:
        """Join the outstanding asynchronous batch, re-raising the first sink error."""
        pending, self._pending = self._pending, []
        if not pending:
            return
        self.sink_wait_time.start()
        error: Optional[BaseException] = None
        for future in pending:
            exc = future.exception()
            if exc is not None and error is None:
                error = exc
        self.sink_wait_time.stop()
        if error is not None:
            raise error

    def produce(self, clear: bool = True) -> None:
        self.wait_async()
        if clear:
            self.read.clear()
        self.write, self.read = self.read, self.write
        block = self.read
        with self._lock:
            subscriptions = list(self._subscriptions)

        self.sink_process_time.start()
        try:
            for s in subscriptions:
                if s.asynchronous:
                    self._pending.append(self.executor.submit(s.sink.process, block))
            for s in subscriptions:
                if not s.asynchronous:
                    s.sink.process(block)
        finally:
            self.sink_process_time.stop()


class Upstream:
    """Input side of a stage: remembers which source it is attached to."""

    def __init__(self, owner) -> None:
        self.owner = owner
        self.source = None

    def attach(self, source, asynchronous: bool = False) -> None:
        _check_types(source, self.owner)
        self.detach()
        source.publisher.register(self.owner, asynchronous)
        self.source = source

    def detach(self) -> None:
        if self.source is not None:
            self.source.publisher.unregister(self.owner)
            self.source = None


def _name_of(stage) -> str:
    return getattr(stage, "name", type(stage).__name__)


def _check_types(source, sink) -> None:
    produced = getattr(source, "output_type", None)
    wanted = getattr(sink, "input_type", None)
    if produced is not None and wanted is not None and not issubclass(produced, wanted):
        raise ConfigurationError(
            f"cannot connect {_name_of(source)} ({produced.__name__}) "
            f"to {_name_of(sink)} ({wanted.__name__})"
        )


# ── capabilities ──────────────────────────────────────────────────────


class Produces:
    """Output capability; requires ``self.publisher``."""

    name: str
    output_type: Type[Samples] = ComplexSamples
    publisher: Publisher

    def sample_frequency(self) -> float:
        return math.nan

    def connect(self, sink, asynchronous: bool = False) -> None:
        """Subscribe ``sink``.  A stage sink is detached from its previous source first."""
        if isinstance(sink, Consumes):
            sink.connect_source(self, asynchronous)
        else:
            _check_types(self, sink)
            self.publisher.register(sink, asynchronous)

    def disconnect(self, sink) -> None:
        if isinstance(sink, Consumes) and sink.source is self:
            sink.disconnect_source()
        else:
            self.publisher.unregister(sink)

    def produce(self, clear: bool = True) -> None:
        self.publisher.produce(clear)

    def wait_async(self) -> None:
        self.publisher.wait_async()

    @property
    def sinks(self) -> List[object]:
        return self.publisher.sinks

    @property
    def write_buffer(self) -> Samples:
        return self.publisher.write

    @property
    def executor(self) -> Optional[Executor]:
        return self.publisher.executor

    @executor.setter
    def executor(self, executor: Optional[Executor]) -> None:
        self.publisher.executor = executor

    @property
    def sink_wait_time(self) -> TimeReport:
        return self.publisher.sink_wait_time

    @property
    def sink_process_time(self) -> TimeReport:
        return self.publisher.sink_process_time


class Consumes:
    """Input capability; requires ``self.upstream``."""

    name: str
    input_type: Type[Samples] = ComplexSamples
    upstream: Upstream

    @property
    def source(self):
        return self.upstream.source

    def connect_source(self, source, asynchronous: bool = False) -> None:
        self.upstream.attach(source, asynchronous)

    def disconnect_source(self) -> None:
        self.upstream.detach()

    def input_frequency(self) -> float:
        return self.source.sample_frequency() if self.source is not None else math.nan

    def process(self, block: Samples) -> None:
        raise UnimplementedStageError(f"{self.name}: process() must be overridden")


# ── stages ────────────────────────────────────────────────────────────


class Source(Produces):
    def __init__(self, name: str, executor: Optional[Executor] = None) -> None:
        self.name = name
        self.publisher = Publisher(name, self.output_type, executor)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class Sink(Consumes):
    def __init__(self, name: str, source=None, asynchronous: bool = False) -> None:
        self.name = name
        self.upstream = Upstream(self)
        if source is not None:
            self.connect_source(source, asynchronous)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class Transform(Produces, Consumes):
    """A sink of its upstream and a source to its downstream.

    Subclasses override ``transform(x, out)``; simple stages may instead pass
    ``function=`` to the constructor.  Either way the result is written into
    ``out`` (the write block) and published when ``transform`` returns.
    """

    def __init__(
        self,
        name: str,
        source=None,
        function: Optional[TransformFunction] = None,
        executor: Optional[Executor] = None,
        asynchronous: bool = False,
    ) -> None:
        self.name = name
        self._function = function
        self.publisher = Publisher(name, self.output_type, executor)
        self.upstream = Upstream(self)
        if source is not None:
            self.connect_source(source, asynchronous)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    def sample_frequency(self) -> float:
        return self.input_frequency()

    def transform(self, x: Samples, out: Samples) -> None:
        if self._function is None:
            raise UnimplementedStageError(
                f"{self.name}: transform() must be overridden or a function supplied"
            )
        self._function(x, out)

    def process(self, block: Samples) -> None:
        self.transform(block, self.publisher.write)
        self.produce(clear=True)


class Filter(Transform):
    """Transform whose output element kind equals its input kind.

    The kind comes from ``sample_type``, else from the source, else complex.
    """

    def __init__(
        self,
        name: str,
        source=None,
        sample_type: Optional[Type[Samples]] = None,
        executor: Optional[Executor] = None,
        asynchronous: bool = False,
    ) -> None:
        if sample_type is None:
            sample_type = source.output_type if source is not None else ComplexSamples
        self.input_type = self.output_type = sample_type
        super().__init__(name, source, executor=executor, asynchronous=asynchronous)


# ── test and application helpers ──────────────────────────────────────


class SampleSource(Source):
    """Source fed from outside with ``push(array)``.

    The base of the hardware adapter and of test drivers.  The sample rate is
    a plain attribute so it can change while running.
    """

    def __init__(
        self,
        name: str = "SampleSource",
        sample_frequency: float = math.nan,
        output_type: Type[Samples] = ComplexSamples,
        executor: Optional[Executor] = None,
    ) -> None:
        self.output_type = output_type
        self.rate = float(sample_frequency)
        super().__init__(name, executor)

    def sample_frequency(self) -> float:
        return self.rate

    def push(self, values) -> None:
        if isinstance(values, Samples):
            self.publisher.write.assign(*values.components())
        else:
            out = self.publisher.write
            out.assign(*type(out)(values).components())
        self.produce(clear=True)


class CaptureSink(Sink):
    """Sink that keeps a copy of every block it receives."""

    def __init__(self, source=None, input_type: Type[Samples] = ComplexSamples, name: str = "Capture",
                 asynchronous: bool = False) -> None:
        self.input_type = input_type
        self.blocks: List[Samples] = []
        self._lock = threading.Lock()
        super().__init__(name, source, asynchronous)

    def process(self, block: Samples) -> None:
        with self._lock:
            self.blocks.append(block.copy())

    def samples(self) -> np.ndarray:
        """All captured samples, concatenated."""
        with self._lock:
            parts = [b.to_numpy() for b in self.blocks]
        if not parts:
            return np.empty(0, dtype=self.input_type.dtype)
        return np.concatenate(parts)

    def clear(self) -> None:
        with self._lock:
            self.blocks.clear()


class CycleTime(Sink):
    """Sink that measures the interval between successive blocks."""

    def __init__(self, source=None, input_type: Type[Samples] = ComplexSamples,
                 high_ns: Optional[int] = None) -> None:
        self.input_type = input_type
        self.time = TimeReport("CycleTime", high_ns)
        super().__init__("CycleTime", source)

    def process(self, block: Samples) -> None:
        self.time.stop()
        self.time.start()

