"""reviewtask core: review normalization, task synthesis and reconciliation."""
