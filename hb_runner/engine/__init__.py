"""Execution engine: process supervision, cleanup, retries and the lifecycle driver."""
