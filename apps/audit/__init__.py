"""
Audit application.

Records privileged actions, login attempts and live console sessions, and
serves the read side (queries, statistics, streaming exports, retention).
"""
