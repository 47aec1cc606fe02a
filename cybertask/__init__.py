"""CyberTask - task and project management domain service"""

__version__ = "1.0.0"
