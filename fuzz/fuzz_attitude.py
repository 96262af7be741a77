#!/usr/bin/env python3
"""
LibFuzzer harness for attitude fusion and ATT serialization (fuse, attitude_to_json).

Feed raw bytes as JSON: {"acc":[x,y,z],"gyro":[x,y,z],"mag":[x,y,z]}
Fuzzer exercises rotation-matrix degeneracy checks and JSON output with
arbitrary (including huge and non-finite) vectors.
Run: python fuzz/fuzz_attitude.py fuzz/corpus/attitude/ [options]
"""

import json
import sys

try:
    import atheris
except ImportError:
    print("Install atheris: pip install atheris")
    sys.exit(1)

with atheris.instrument_imports():
    from gpsd_forwarder.attitude import fuse
    from gpsd_forwarder.multiplexer import attitude_to_json


def _vector(obj: dict, key: str):
    value = obj.get(key, [0, 0, 0])
    if not isinstance(value, list) or len(value) != 3:
        return None
    try:
        return tuple(float(v) for v in value)
    except (TypeError, ValueError, OverflowError):
        return None


def test_one_input(data: bytes) -> None:
    """Single fuzz iteration: fuse three vectors and serialize the record."""
    try:
        obj = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return
    if not isinstance(obj, dict):
        return
    acc = _vector(obj, "acc")
    gyro = _vector(obj, "gyro")
    mag = _vector(obj, "mag")
    if acc is None or gyro is None or mag is None:
        return
    record = fuse(acc, gyro, mag, timestamp=0.0)
    if record.has_orientation:
        for angle in (record.yaw, record.pitch, record.roll):
            assert -180.0 < angle <= 180.0
    try:
        line = attitude_to_json(record)
    except ValueError:
        return
    assert json.loads(line)["class"] == "ATT"


def main() -> None:
    atheris.Setup(sys.argv, test_one_input)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
