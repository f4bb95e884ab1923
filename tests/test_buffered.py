import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from sdrstream.buffered import CaptureSink, CycleTime, Filter, SampleSource, Sink, Transform
from sdrstream.errors import ConfigurationError, UnimplementedStageError
from sdrstream.samples import ComplexSamples, RealSamples


class Recorder(Sink):
    input_type = RealSamples

    def __init__(self, name, log, source=None, asynchronous=False):
        self.log = log
        super().__init__(name, source, asynchronous)

    def process(self, block):
        self.log.append((self.name, block.real.tolist()))


class Boom(Sink):
    input_type = RealSamples

    def process(self, block):
        raise RuntimeError("sink failed")


def test_sync_sinks_run_in_registration_order():
    log = []
    source = SampleSource("src", 100.0, RealSamples)
    Recorder("a", log, source)
    Recorder("b", log, source)
    source.push([1, 2])
    source.push([3])
    assert log == [("a", [1, 2]), ("b", [1, 2]), ("a", [3]), ("b", [3])]


def test_produce_swaps_and_clears_buffers():
    source = SampleSource("src", 100.0, RealSamples)
    capture = CaptureSink(source, RealSamples)
    source.push([1, 2, 3])
    assert len(source.write_buffer) == 0
    source.push([4])
    assert [b.real.tolist() for b in capture.blocks] == [[1, 2, 3], [4]]
    np.testing.assert_array_equal(capture.samples(), [1, 2, 3, 4])


def test_async_sink_runs_on_executor_and_is_joined():
    seen = []

    class Slow(Sink):
        input_type = RealSamples

        def process(self, block):
            seen.append((threading.current_thread().name, block.real.tolist()))

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="worker") as pool:
        source = SampleSource("src", 100.0, RealSamples, executor=pool)
        Slow("slow", source, asynchronous=True)
        source.push([1])
        source.push([2])
        source.wait_async()
    assert [v for _, v in seen] == [[1], [2]]
    assert all(name.startswith("worker") for name, _ in seen)
    assert source.sink_wait_time.count >= 1


def test_async_sink_error_reaches_producer():
    with ThreadPoolExecutor(max_workers=1) as pool:
        source = SampleSource("src", 100.0, RealSamples, executor=pool)
        Boom("boom", source, asynchronous=True)
        source.push([1])
        with pytest.raises(RuntimeError, match="sink failed"):
            source.push([2])


def test_sync_sink_error_still_closes_process_timing():
    source = SampleSource("src", 100.0, RealSamples)
    boom = Boom("boom", source)
    with pytest.raises(RuntimeError, match="sink failed"):
        source.push([1])
    report = source.sink_process_time
    assert report.count + report.bad_count == 1

    boom.disconnect_source()
    source.push([2])
    assert report.count + report.bad_count == 2


def test_async_sink_without_executor_is_rejected():
    source = SampleSource("src", 100.0, RealSamples)
    with pytest.raises(ConfigurationError):
        CaptureSink(source, RealSamples, asynchronous=True)


def test_connect_rejects_sample_type_mismatch():
    source = SampleSource("src", 100.0, RealSamples)
    with pytest.raises(ConfigurationError):
        CaptureSink(source, ComplexSamples)
    assert source.sinks == []


def test_reconnect_moves_sink_between_sources():
    first = SampleSource("first", 100.0, RealSamples)
    second = SampleSource("second", 100.0, RealSamples)
    capture = CaptureSink(first, RealSamples)

    second.connect(capture)
    assert first.sinks == [] and second.sinks == [capture]
    assert capture.source is second

    second.disconnect(capture)
    assert second.sinks == [] and capture.source is None


class RealTransform(Transform):
    input_type = RealSamples
    output_type = RealSamples


def test_transform_with_function_and_rate():
    source = SampleSource("src", 8000.0, RealSamples)
    double = RealTransform("double", source, function=lambda x, out: out.assign(x.real * 2))
    capture = CaptureSink(double, RealSamples)
    source.push([1, 2, 3])
    np.testing.assert_array_equal(capture.samples(), [2, 4, 6])
    assert double.sample_frequency() == 8000.0


def test_unimplemented_transform_raises():
    source = SampleSource("src", 100.0, ComplexSamples)
    Transform("nothing", source)
    with pytest.raises(UnimplementedStageError):
        source.push([1j])


def test_filter_takes_sample_type_from_source():
    real = Filter("f", SampleSource("src", 1.0, RealSamples))
    assert real.input_type is RealSamples and real.output_type is RealSamples
    assert Filter("g").output_type is ComplexSamples


def test_unconnected_stage_has_no_rate():
    assert np.isnan(CaptureSink().input_frequency())


def test_cycle_time_counts_intervals():
    source = SampleSource("src", 100.0, RealSamples)
    cycle = CycleTime(source, RealSamples)
    for _ in range(3):
        source.push([0.0])
    assert cycle.time.count == 2
    assert cycle.time.bad_count == 1
