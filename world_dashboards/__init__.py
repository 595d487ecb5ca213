"""Data back-ends for the power plant and wealth & health dashboards."""

__version__ = "0.1.0"
