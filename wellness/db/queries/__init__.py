"""
Database queries

Module organization:
- sessions.py: Wellness session documents, soft delete, listing
- points.py: User points ledgers and leaderboard
- achievements.py: Per-user achievement progress
"""
