"""Expense classifier: LLM-backed expense categorization with batch category reconciliation."""
