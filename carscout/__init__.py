"""
carscout: listing acquisition client for a build-identifier-versioned marketplace API.
"""

__version__ = "0.1.0"
