"""YCSB against MongoDB."""
