"""Collaborators used by the chat session: generation, persistence, titles, errors."""
