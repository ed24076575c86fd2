"""
SQL job harness package.

Modules:
- config: environment-driven settings for both modes
- submitter: orchestrator loop that fans out runner jobs to Kubernetes
- driver: bounded query loop executed by each runner job
- database: SQLAlchemy engine construction and scalar queries
- endpoint: local Flask endpoint wrapping a pooled query
- runner: wiring of the driver with either query variant
"""
