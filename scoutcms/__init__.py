"""ScoutCMS: GitHub-backed content service for the scout group website."""
