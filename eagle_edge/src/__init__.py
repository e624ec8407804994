"""
Edge daemon package for the Eagle HAN meter bridge.

Polls a Rainforest Eagle 100 (JSON) or Eagle 200 (XML) energy gateway,
normalizes meter readings, tracks billing-period counters, and publishes
everything into a local SQLite variable store.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""
