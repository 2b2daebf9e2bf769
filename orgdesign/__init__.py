"""
orgdesign: organization tree and policy modeling engine.
"""

__version__ = "0.1.0"
