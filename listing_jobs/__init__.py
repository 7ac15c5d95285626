"""
Recurring job orchestration for external listing sources.

Key modules:
    orchestrator   -- JobScheduler owning the scrape / health / cleanup triggers
    source_runner  -- SourceScrapeRunner for single- and multi-page sources
    metrics        -- MetricsRecorder ledger and windowed summaries
    health         -- HealthMonitor classification
    cleanup        -- CleanupCoordinator dry-run-then-destroy
    config         -- YAML / environment configuration
    collaborators  -- HTTP implementations of the collaborator interfaces
"""

__version__ = "0.1.0"
