"""Connection orchestration: probing, streaming, reconciliation and actions."""
