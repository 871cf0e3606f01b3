"""Built-in workload behaviors."""
