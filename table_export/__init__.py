"""Table-Export: one-shot health data table export pipeline."""

__version__ = "1.0.0"
