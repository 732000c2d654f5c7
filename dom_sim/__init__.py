"""
DOM Simulator - multi-venue order book depth with hypothetical order rehearsal.

Architecture:
- datafeed/: venue adapters, websocket connection management, REST snapshots
- engine/: pure computations (depth aggregation, order simulation)
- store.py: market state container shared by feed and UI
- ui/: DOM ladder + order entry (Textual TUI)
"""

__version__ = "0.1.0"
