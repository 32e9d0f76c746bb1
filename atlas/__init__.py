"""
ATLAS Tracker - habit, workout, nutrition and goal tracking backend
"""

__version__ = "1.0.0"
