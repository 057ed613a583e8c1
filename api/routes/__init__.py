"""
API Routes for the Career Funnel.
"""

from . import chat, leads, rules, sequences

__all__ = ["chat", "leads", "rules", "sequences"]
