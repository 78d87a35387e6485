"""Keep DNS service discovery records in sync with running Docker containers"""
__version__ = "0.1.0"
