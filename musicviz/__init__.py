"""
musicviz: bar visualizer synced to live audio or to a beat schedule.
"""

__version__ = '0.1.0'
