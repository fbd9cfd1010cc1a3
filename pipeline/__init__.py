"""
Sync pipeline components for timesheet and HR ingestion.

This package contains every stage of a source sync:

Modules:
    window: Ingestion window resolution (previous month start to current month end)
    http: Shared HTTP client with timeouts, retry logic and error mapping
    base: Abstract base class for source fetchers with pagination support
    lookups: Id -> name maps used to enrich normalized rows
    normalizer: Raw record -> normalized row transformation
    run_context: Sync run tracking (run id, fetch completeness, errors)
    upsert: Batched, idempotent upserts keyed on natural keys
    reconciler: Guarded deletion of rows no longer present upstream
    lease: Per-scope mutual exclusion
    runner: Orchestrator that runs one source end to end
    sources: Fetcher construction from settings
    scheduler: APScheduler integration for recurring syncs

Subpackages:
    fetchers: Tracker, time-tracking and HR fetchers

Architecture:
    Each source runs as one sequential pipeline:

    1. Fetch - Call the upstream API for the window; failures land on the run
    2. Normalize - Map raw records to validated rows, dropping malformed ones
    3. Seal - Freeze the run so later stages read a fixed outcome
    4. Upsert - Write rows in independent batches stamped with the run id
    5. Reconcile - Delete stale rows, only after a complete fetch and upsert

Usage:
    from pipeline.runner import SyncRunner
    from pipeline.sources import build_fetchers

Example:
    async with httpx.AsyncClient() as client:
        runner = SyncRunner(async_session_maker)
        for fetcher in build_fetchers(settings, client):
            summary = await runner.run(fetcher)
"""
