"""Walking pad display capture, analysis and history."""
