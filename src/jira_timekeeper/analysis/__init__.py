"""Statistics and reports over worklogs."""
