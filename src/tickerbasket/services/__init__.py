"""Service layer: price refresh, plan execution, snapshots and run orchestration."""
