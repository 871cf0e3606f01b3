"""MLPerf inference."""
