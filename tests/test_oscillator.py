import math

import numpy as np
import pytest

from sdrstream.buffered import CaptureSink, SampleSource
from sdrstream.errors import ConfigurationError
from sdrstream.oscillator import (
    CostasLoop,
    Mixer,
    Oscillator,
    OscillatorDirect,
    OscillatorLookup,
    OscillatorPrecise,
    TanhLookup,
    error_estimator_2,
    error_estimator_2s,
)
from sdrstream.samples import ComplexSamples, RealSamples
from sdrstream.scope import ScopeData


def expected_tone(f, fs, count, start=0):
    return np.exp(2j * np.pi * f / fs * np.arange(start, start + count))


def test_lookup_oscillator_tracks_tone():
    osc = Oscillator(1000.0, 48000.0)
    capture = CaptureSink(osc, ComplexSamples)
    osc.generate(480)
    np.testing.assert_allclose(capture.samples(), expected_tone(1000, 48000, 480), atol=5e-3)


def test_precise_oscillator_is_continuous_across_blocks():
    osc = OscillatorPrecise(1234.5, 48000.0, level=0.5)
    capture = CaptureSink(osc, ComplexSamples)
    osc.generate(100)
    osc.generate(300)
    np.testing.assert_allclose(capture.samples(), 0.5 * expected_tone(1234.5, 48000, 400), atol=1e-5)


def test_real_oscillator_outputs_cosine():
    osc = OscillatorPrecise(100.0, 1000.0, output_type=RealSamples)
    capture = CaptureSink(osc, RealSamples)
    osc.generate(50)
    np.testing.assert_allclose(capture.samples(), np.cos(2 * np.pi * 0.1 * np.arange(50)), atol=1e-5)


def test_default_block_holds_about_ten_cycles():
    osc = Oscillator(1000.0, 48000.0)
    assert osc.buffer_size == 480
    capture = CaptureSink(osc, ComplexSamples)
    osc.generate()
    assert len(capture.samples()) == 480


@pytest.mark.parametrize("engine", [OscillatorLookup, OscillatorDirect])
def test_nco_controls(engine):
    nco = engine(1000.0, 8000.0)
    assert nco.get_frequency() == pytest.approx(2 * math.pi / 8)
    nco.set_frequency(0.5)
    nco.adjust_frequency(-0.1)
    assert nco.get_frequency() == pytest.approx(0.4)
    nco.set_phase(1.0)
    nco.adjust_phase(0.25)
    assert nco.get_phase() == pytest.approx(1.25)


@pytest.mark.parametrize("engine", [OscillatorLookup, OscillatorDirect])
def test_nco_phase_stays_wrapped(engine):
    nco = engine(3900.0, 8000.0)
    for _ in range(1000):
        nco.next()
    assert abs(nco.get_phase()) < 3 * math.pi
    c, s = nco.block(5000)
    assert abs(nco.get_phase()) <= 2 * math.pi
    assert c.dtype == np.float32 and len(s) == 5000


def test_negative_frequency_rotates_backwards():
    osc = OscillatorPrecise(-1000.0, 8000.0)
    assert osc.get_frequency() == pytest.approx(-2 * math.pi / 8)
    capture = CaptureSink(osc, ComplexSamples)
    osc.generate(16)
    np.testing.assert_allclose(capture.samples(), expected_tone(-1000, 8000, 16), atol=1e-5)


def test_rate_checks():
    with pytest.raises(ConfigurationError):
        Oscillator(30000.0, 48000.0)
    with pytest.raises(ConfigurationError):
        Oscillator(100.0, 0.0)
    with pytest.raises(ConfigurationError):
        Mixer(100.0)


def test_mixer_shifts_tone_to_dc():
    source = SampleSource("src", 48000.0, ComplexSamples)
    Mixer(-3000.0, source)
    capture = CaptureSink(source.sinks[0], ComplexSamples)
    x = expected_tone(3000, 48000, 2000).astype(np.complex64)
    source.push(x[:700])
    source.push(x[700:])
    np.testing.assert_allclose(capture.samples(), np.ones(2000), atol=5e-3)


def test_mixer_with_null_estimator_matches_open_loop():
    x = expected_tone(500, 8000, 300).astype(np.complex64)

    def mix(**kwargs):
        source = SampleSource("src", 8000.0, ComplexSamples)
        mixer = Mixer(700.0, source, **kwargs)
        capture = CaptureSink(mixer, ComplexSamples)
        source.push(x)
        return capture.samples()

    closed = mix(error_estimator=lambda v, o: 0.0)
    np.testing.assert_allclose(closed, mix(), atol=1e-2)


def test_costas_loop_locks_to_carrier():
    source = SampleSource("src", 1.0, ComplexSamples)
    scope = ScopeData(3, 100, 1.0)
    loop = CostasLoop(0.0, source, loop_bandwidth=0.01, scope_data=scope)
    capture = CaptureSink(loop, ComplexSamples)
    x = np.exp(2j * np.pi * 0.01 * np.arange(5000)).astype(np.complex64)
    for k in range(0, 5000, 1000):
        source.push(x[k:k + 1000])

    assert loop.nco.get_frequency() == pytest.approx(-2 * np.pi * 0.01, abs=2e-3)
    tail = capture.samples()[-500:]
    # constant phase once locked
    assert np.std(np.angle(tail * np.conj(tail[0]))) < 0.05
    assert 0 < len(scope) <= 100
    assert scope.get_and_clear().shape[1] == 3
    last = capture.blocks[-1]
    assert last.real.dtype == np.float32 and last.imag.dtype == np.float32
    assert isinstance(loop.nco.phase, float)


def test_costas_estimators():
    assert error_estimator_2(complex(0.5, 0.5)) == pytest.approx(0.25)
    assert error_estimator_2s(complex(1.0, 0.0)) == 0.0
    loop = CostasLoop(0.0, sample_hz=1.0)
    loop.noise = 2.0
    assert loop.error_estimator_snr2(complex(1.0, 1.0)) == pytest.approx(math.tanh(math.sqrt(2) / 2), abs=1e-2)


def test_tanh_lookup():
    tanh = TanhLookup()
    assert tanh(5.0) == 1.0
    assert tanh(-5.0) == -1.0
    for v in (-1.5, -0.3, 0.0, 0.7, 1.9):
        assert tanh(v) == pytest.approx(math.tanh(v), abs=1e-2)
