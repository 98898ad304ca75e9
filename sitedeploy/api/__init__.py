"""HTTP API for sitedeploy."""
