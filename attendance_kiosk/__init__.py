"""
Attendance Kiosk - Face Recognition Attendance

A Python service that identifies a person from a live face embedding,
matches it against enrolled identities and records deduplicated
attendance events. Provides a Flask API and an MJPEG preview stream.
"""

__version__ = "1.0.0"
__author__ = "Attendance Kiosk Team"
