import math

import numpy as np
import pytest

from sdrstream.buffered import CaptureSink, SampleSource
from sdrstream.demod import (
    AMEnvDemodulate,
    AMEnvDemodulateX,
    AMModulate,
    FMDeemphasis,
    FMDemodulate,
    FMTestBaseband,
    create_demodulator,
)
from sdrstream.errors import ConfigurationError
from sdrstream.samples import ComplexSamples, RealSamples


def sum_of_sines(count=1024):
    # freqmodem test signal from liquid-dsp
    n = np.arange(count)
    return (0.3 * np.cos(2 * np.pi * 0.013 * n)
            + 0.2 * np.cos(2 * np.pi * 0.021 * n + 0.4)
            + 0.4 * np.cos(2 * np.pi * 0.037 * n + 1.7))


def chain(stage_factory, chunks, input_type, output_type, rate=1.0):
    source = SampleSource("src", rate, input_type)
    stage = stage_factory(source)
    capture = CaptureSink(stage, output_type)
    for chunk in chunks:
        source.push(chunk)
    return stage, capture.samples()


@pytest.mark.parametrize("modulation_factor", [0.02, 0.04, 0.08])
def test_fm_demodulate_recovers_message(modulation_factor):
    y = sum_of_sines()
    phase = np.cumsum(2 * np.pi * modulation_factor * y)
    x = np.exp(1j * phase).astype(np.complex64)

    _, whole = chain(lambda s: FMDemodulate(modulation_factor, s), [x], ComplexSamples, RealSamples)
    np.testing.assert_allclose(whole[1:], y[1:], atol=1e-6)
    assert whole[0] == 0.0

    half = len(x) // 2
    _, halves = chain(lambda s: FMDemodulate(modulation_factor, s), [x[:half], x[half:]],
                      ComplexSamples, RealSamples)
    np.testing.assert_allclose(halves[1:], y[1:], atol=1e-6)


def modulate_demodulate(modulation_factor, chunks):
    source = SampleSource("src", 1.0, RealSamples)
    demodulator = FMDemodulate(modulation_factor, FMTestBaseband(modulation_factor, source))
    capture = CaptureSink(demodulator, RealSamples)
    for chunk in chunks:
        source.push(chunk)
    return capture.samples()


@pytest.mark.parametrize("modulation_factor", [0.02, 0.04, 0.08])
def test_fm_round_trip_whole_and_halves(modulation_factor):
    y = sum_of_sines().astype(np.float32)
    whole = modulate_demodulate(modulation_factor, [y])
    np.testing.assert_allclose(whole[1:], y[1:], atol=1e-6)

    halves = modulate_demodulate(modulation_factor, [y[:512], y[512:]])
    np.testing.assert_allclose(halves[1:], y[1:], atol=1e-6)


def test_fm_modulate_demodulate_round_trip():
    y = sum_of_sines(2000).astype(np.float32)
    source = SampleSource("src", 1.0, RealSamples)
    modulator = FMTestBaseband(0.05, source)
    demodulator = FMDemodulate(0.05, modulator)
    capture = CaptureSink(demodulator, RealSamples)
    for k in range(0, 2000, 300):
        source.push(y[k:k + 300])
    o = capture.samples()
    assert len(o) == 2000
    np.testing.assert_allclose(o[1:], y[1:], atol=1e-6)


def test_fm_modulator_output_is_unit_circle():
    _, x = chain(lambda s: FMTestBaseband(0.1, s), [sum_of_sines(100).astype(np.float32)],
                 RealSamples, ComplexSamples)
    np.testing.assert_allclose(np.abs(x), np.ones(100), atol=1e-6)


def test_fm_factor_checks():
    with pytest.raises(ConfigurationError):
        FMDemodulate(0.0)
    with pytest.raises(ConfigurationError):
        FMTestBaseband(-1.0)


def test_deemphasis_unity_dc_and_high_frequency_cut():
    fs = 48000.0
    _, dc = chain(lambda s: FMDeemphasis(s), [np.ones(300, dtype=np.float32)], RealSamples, RealSamples, fs)
    assert dc[-1] == pytest.approx(1.0, abs=1e-4)

    n = np.arange(4800)
    hi = np.cos(2 * np.pi * 10000 / fs * n).astype(np.float32)
    stage, out = chain(lambda s: FMDeemphasis(s), [hi[:1000], hi[1000:]], RealSamples, RealSamples, fs)
    assert np.sqrt(np.mean(out[500:] ** 2)) < 0.3 * np.sqrt(np.mean(hi[500:] ** 2))
    assert stage.name == "FMDeemphasis"
    assert stage.tau == 75e-6


def test_deemphasis_needs_rate():
    with pytest.raises(ConfigurationError):
        FMDeemphasis()
    with pytest.raises(ConfigurationError):
        FMDeemphasis(sample_hz=48000.0, tau=0.0)


def test_am_envelope_demodulate_removes_carrier_and_mean():
    n = np.arange(1000)
    message = 0.5 * np.cos(2 * np.pi * 0.01 * n)
    x = ((1 + message) * np.exp(2j * np.pi * 0.1 * n)).astype(np.complex64)
    _, out = chain(lambda s: AMEnvDemodulate(s), [x], ComplexSamples, RealSamples)
    np.testing.assert_allclose(out, message, atol=1e-4)

    _, plain = chain(lambda s: AMEnvDemodulateX(s, factor=2.0), [x], ComplexSamples, RealSamples)
    np.testing.assert_allclose(plain, (1 + message) / 2, atol=1e-5)


def test_am_modulate():
    m = np.cos(2 * np.pi * 0.01 * np.arange(200)).astype(np.float32)
    _, full = chain(lambda s: AMModulate(0.0, s, factor=0.5), [m], RealSamples, ComplexSamples)
    np.testing.assert_allclose(full, 1 + 0.5 * m, atol=1e-6)

    _, suppressed = chain(lambda s: AMModulate(0.0, s, factor=0.5, suppressed_carrier=True),
                          [m], RealSamples, ComplexSamples)
    np.testing.assert_allclose(suppressed, 0.5 * m, atol=1e-6)

    _, carried = chain(lambda s: AMModulate(0.125, s, carrier_level=2.0), [np.zeros(16, dtype=np.float32)],
                       RealSamples, ComplexSamples)
    np.testing.assert_allclose(carried, 2 * np.exp(2j * np.pi * 0.125 * np.arange(16)), atol=2e-2)


def test_am_modulate_demodulate_round_trip():
    n = np.arange(2000)
    message = (0.4 * np.cos(2 * np.pi * 0.02 * n)).astype(np.float32)
    source = SampleSource("src", 1.0, RealSamples)
    modulator = AMModulate(0.1, source)
    demodulator = AMEnvDemodulateX(modulator)
    capture = CaptureSink(demodulator, RealSamples)
    source.push(message)
    np.testing.assert_allclose(capture.samples(), 1 + message, atol=1e-5)


def test_create_demodulator():
    assert isinstance(create_demodulator("FM", modulation_factor=0.1), FMDemodulate)
    assert isinstance(create_demodulator("am"), AMEnvDemodulate)
    with pytest.raises(ConfigurationError):
        create_demodulator("ssb")
    assert create_demodulator("fm").factor == pytest.approx(1 / (2 * math.pi * 0.25))
