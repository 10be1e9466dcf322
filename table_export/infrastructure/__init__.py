"""Infrastructure layer for Table-Export: configuration, settings and logging."""
