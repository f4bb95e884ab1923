"""
Streaming SDR signal processing.

This package provides:
- A block pipeline of sources, sinks and transforms with async fan-out
- FIR / IIR filters, a polyphase resampler and kernel design helpers
- Oscillators, mixer / PLL, Costas loop, AGC and DC removal
- FM / AM modulators and demodulators, spectrum and scope collectors
- RTL-SDR and sound card adapters, and a receiver CLI
"""
