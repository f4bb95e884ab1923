import math

import numpy as np
import pytest
from scipy import signal as sig

from sdrstream.buffered import CaptureSink, SampleSource
from sdrstream.errors import ConfigurationError
from sdrstream.resample import UpFIRDown
from sdrstream.samples import ComplexSamples, RealSamples


def resample(x, chunks, sample_type=RealSamples, **kwargs):
    source = SampleSource("src", 48000.0, sample_type)
    stage = UpFIRDown(source=source, **kwargs)
    capture = CaptureSink(stage, sample_type)
    start = 0
    for n in chunks:
        source.push(x[start:start + n])
        start += n
    return stage, capture.samples()


H = np.array([0.05, -0.1, 0.2, 0.4, 0.3, 0.15, -0.05, 0.02, 0.01], dtype=np.float32)


@pytest.mark.parametrize("up, down", [(3, 2), (2, 3), (1, 4), (5, 1), (4, 4)])
def test_matches_upfirdn(up, down):
    rng = np.random.default_rng(4)
    x = rng.standard_normal(41).astype(np.float32)
    stage, y = resample(x, [41], up=up, down=down, coefficients=H)
    c = math.gcd(up, down)
    expected = sig.upfirdn(H.astype(np.float64) * (up // c), x, up // c, down // c)
    assert len(y) == math.ceil(41 * up / down)
    np.testing.assert_allclose(y, expected[:len(y)], atol=1e-5)


def test_output_independent_of_chunking():
    rng = np.random.default_rng(5)
    x = (rng.standard_normal(300) + 1j * rng.standard_normal(300)).astype(np.complex64)
    _, whole = resample(x, [300], ComplexSamples, up=3, down=7)
    _, chunked = resample(x, [1, 6, 0, 13, 100, 2, 178], ComplexSamples, up=3, down=7)
    assert len(whole) == len(chunked) == math.ceil(300 * 3 / 7)
    np.testing.assert_allclose(chunked, whole, atol=1e-6)


def test_output_count_predicts_block_sizes():
    source = SampleSource("src", 48000.0, RealSamples)
    stage = UpFIRDown(3, 2, source=source)
    capture = CaptureSink(stage, RealSamples)
    for n in [7, 13, 1, 20]:
        predicted = stage.output_count(n)
        source.push(np.zeros(n, dtype=np.float32))
        assert len(capture.blocks[-1]) == predicted
    assert sum(len(b) for b in capture.blocks) == math.ceil(41 * 3 / 2)


def test_rate_and_reduced_factors():
    source = SampleSource("src", 2_400_000.0, ComplexSamples)
    stage = UpFIRDown(240_000, 2_400_000, source=source)
    assert (stage.up, stage.down) == (1, 10)
    assert stage.sample_frequency() == pytest.approx(240_000.0)


def test_decimated_tone_keeps_unity_gain():
    n = np.arange(8000)
    x = np.exp(2j * np.pi * 0.01 * n).astype(np.complex64)
    _, y = resample(x, [2000] * 4, ComplexSamples, up=1, down=4)
    settled = y[200:]
    assert np.abs(settled).mean() == pytest.approx(1.0, abs=1e-2)


def test_invalid_factors():
    with pytest.raises(ConfigurationError):
        UpFIRDown(0, 1)
    with pytest.raises(ConfigurationError):
        UpFIRDown(1, 0)
    with pytest.raises(ConfigurationError):
        UpFIRDown(2, 1, coefficients=[])
