#!/usr/bin/env python3
"""
LibFuzzer harness for sampling period parsing (SamplingConfig.parse).

Feed raw bytes (UTF-8). Fuzzer exercises preset lookup and integer parsing.
Run: python fuzz/fuzz_sampling.py fuzz/corpus/sampling/ [options]
"""

import sys

try:
    import atheris
except ImportError:
    print("Install atheris: pip install atheris")
    sys.exit(1)

with atheris.instrument_imports():
    from gpsd_forwarder.messages import SamplingConfig


def test_one_input(data: bytes) -> None:
    """Single fuzz iteration: parse data as a sampling period."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return
    try:
        config = SamplingConfig.parse(text)
    except ValueError:
        return
    assert config.enabled == (config.period_us is not None)
    assert config.period_us is None or config.period_us >= 0


def main() -> None:
    atheris.Setup(sys.argv, test_one_input)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
