"""Collaborators behind narrow protocols: git, notifications, the editor."""
