"""Run-once InfluxDB bootstrapper for the development container."""

__version__ = "0.1.0"
