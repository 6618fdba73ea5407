"""
Core Infrastructure for JobForge.

This package holds the job lifecycle engine and the foundational services it
depends on.

Architecture Position
---------------------
    API / CLI (outermost)
      └── Notify (outbound webhooks)
            └── **Core** (innermost - you are here)

Components
----------
**Configuration (config/, config_loaders.py)**
    One immutable Config object built from YAML plus environment overrides and
    passed explicitly to every component.

**Logging (logging.py)**
    Structured logging with key=value fields and per-job stage timing
    (JobLogger).

**Exceptions (exceptions.py)**
    The JobForgeError hierarchy used across the engine.

**Retry (retry.py)**
    Exponential backoff calculation shared by the admission queue.

**Jobs (jobs/)**
    Job store, admission queue, queue backends, workers, stats and the
    JobService facade.

**Pipeline (pipeline/)**
    Stage interface, default stages, stage registry and the pipeline executor.
"""
