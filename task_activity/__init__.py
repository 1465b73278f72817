"""task-activity: a completion heatmap for exported task manager data."""

__version__ = "0.1.0"
