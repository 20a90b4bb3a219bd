"""ResearchAid: browser and desktop automation for Overleaf and AI chat UIs."""

__version__ = "0.4.0"
