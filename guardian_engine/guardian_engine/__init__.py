"""Config Guardian engine: snapshots, risk scoring and rollback for named configuration documents."""

__version__ = "0.3.0"
