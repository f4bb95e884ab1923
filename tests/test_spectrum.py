import numpy as np
import pytest

from sdrstream.buffered import SampleSource
from sdrstream.errors import ConfigurationError
from sdrstream.spectrum import FLOOR_DB, SpectrumData, SpectrumSmoothed, scaled_window
from sdrstream.samples import ComplexSamples
from sdrstream.window import hann


def tone(hz, fs, count, start=0):
    return np.exp(2j * np.pi * hz / fs * np.arange(start, start + count)).astype(np.complex64)


def test_scaled_window_has_fixed_energy():
    w = scaled_window(256, hann).astype(np.float64)
    assert np.sum(w * w) == pytest.approx(2.0, rel=1e-5)


def test_spectrum_data_finds_tone_and_clears():
    source = SampleSource("src", 1024.0, ComplexSamples)
    spectrum = SpectrumData(source, fft_length=1024)
    assert spectrum.get_db_and_clear() == pytest.approx(np.full(1024, FLOOR_DB))

    source.push(tone(100.0, 1024.0, 4096))
    db = spectrum.get_db_and_clear()
    assert spectrum.frequencies()[np.argmax(db)] == pytest.approx(100.0)
    assert spectrum.number_summed == 0

    source.push(tone(-200.0, 1024.0, 2048))
    db = spectrum.get_db_and_clear()
    assert spectrum.frequencies()[np.argmax(db)] == pytest.approx(-200.0)


def test_spectrum_data_segments_follow_stream_not_blocks():
    source = SampleSource("src", 1024.0, ComplexSamples)
    spectrum = SpectrumData(source, fft_length=1024, overlap=512)
    x = tone(50.0, 1024.0, 4096)
    for k in range(0, 4096, 1000):
        source.push(x[k:k + 1000])
    assert spectrum.number_summed == (4096 - 1024) // 512 + 1


def test_spectrum_data_average_is_independent_of_count():
    source = SampleSource("src", 1024.0, ComplexSamples)
    spectrum = SpectrumData(source, fft_length=256)
    source.push(tone(64.0, 1024.0, 256))
    one = spectrum.get_db_and_clear()
    source.push(tone(64.0, 1024.0, 256 * 8))
    eight = spectrum.get_db_and_clear()
    assert eight.max() == pytest.approx(one.max(), abs=1e-3)


def test_frequencies_are_offset_by_centre():
    spectrum = SpectrumData(SampleSource("src", 8.0, ComplexSamples), fft_length=8)
    spectrum.centre_hz = 100.0
    np.testing.assert_allclose(spectrum.frequencies(), 100.0 + np.arange(-4, 4))


def test_spectrum_argument_checks():
    with pytest.raises(ConfigurationError):
        SpectrumData(fft_length=1023)
    with pytest.raises(ConfigurationError):
        SpectrumData(fft_length=16, overlap=16)
    with pytest.raises(ConfigurationError):
        SpectrumSmoothed(fft_length=16, alpha=0.0)


def test_spectrum_smoothed_waits_for_a_full_frame():
    source = SampleSource("src", 512.0, ComplexSamples)
    spectrum = SpectrumSmoothed(source, fft_length=512)
    source.push(tone(32.0, 512.0, 100))
    assert spectrum.get_db_and_clear() == pytest.approx(np.full(512, FLOOR_DB))
    source.push(tone(32.0, 512.0, 412, start=100))
    db = spectrum.get_db_and_clear()
    assert spectrum.frequencies()[np.argmax(db)] == pytest.approx(32.0)


def test_spectrum_smoothed_freeze_holds_until_read():
    source = SampleSource("src", 512.0, ComplexSamples)
    spectrum = SpectrumSmoothed(source, fft_length=512, alpha=1.0)
    source.push(tone(32.0, 512.0, 512))
    spectrum.freeze()
    source.push(tone(-64.0, 512.0, 512))
    held = spectrum.get_db_and_clear()
    assert spectrum.frequencies()[np.argmax(held)] == pytest.approx(32.0)

    source.push(tone(-64.0, 512.0, 512))
    moved = spectrum.get_db_and_clear()
    assert spectrum.frequencies()[np.argmax(moved)] == pytest.approx(-64.0)
