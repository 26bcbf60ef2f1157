"""
Contact Pipeline Module

Walks an owner's contact database through three AI-driven stages:
bio enrichment, investment thesis extraction and profile embedding.
Progress is checkpointed after every batch so a run can be paused,
stopped, resumed after a crash, or advanced one step at a time by a
scheduler.
"""

__version__ = "1.0.0"
