"""Personality Engine: cancellable chat sessions with personality-driven rewriting."""
