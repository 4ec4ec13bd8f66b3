"""Run orchestration for appointment reconciliation."""
