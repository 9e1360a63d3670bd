"""Session core: cancellation, cleanup, session state, SSE and orchestration."""
