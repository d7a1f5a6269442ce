"""Code analysis: analyzers, response normalization and orchestration."""
