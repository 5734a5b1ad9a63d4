"""taskpulse: offline-tolerant task tracker with streaks and adaptive nudges."""

__version__ = "0.3.0"
