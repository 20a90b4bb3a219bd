"""ResearchAid command-line interface."""
