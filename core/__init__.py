"""
core package: the classification session core.

- classifier: local keyword fallback
- session_manager: per-user session cache reconciled with the thread store
- run_driver: one post/run/poll/reply turn against the remote assistant
- orchestrator: public `classify` / `tags_for` entry point with fallback
"""
