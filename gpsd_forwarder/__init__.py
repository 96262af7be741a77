"""
gpsd-forwarder: stream NMEA and fused attitude to a remote gpsd.

Location fixes arrive as NMEA sentences, motion data as raw accelerometer,
gyroscope and magnetometer samples. Both are merged into one line-oriented
stream (NMEA verbatim, attitude as gpsd "ATT" JSON) and written to a TCP
connection.
"""

__version__ = "0.1.0"
