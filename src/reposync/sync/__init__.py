"""Repository sync engine: classifier, diff strategy, file processor, orchestrator."""
