"""Model interaction: retry policies, outcome classification and the turn orchestrator."""
