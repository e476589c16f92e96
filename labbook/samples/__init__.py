"""Physical sample tracking and analysis results."""
