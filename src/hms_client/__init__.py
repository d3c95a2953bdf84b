"""
HMS client: session management and guest access for the Hotel Management
System front-ends.
"""

__version__ = "0.1.0"
