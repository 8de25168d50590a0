"""Cache, telemetry and record-store services used by the search orchestrator."""
